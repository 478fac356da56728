from gateway.schemas.analysis import AnalysisRequest, AnalysisResponse
from gateway.schemas.chat import ChatRequest, ChatResponse, ConversationMessage
from gateway.schemas.imports import ImportRequest, ImportResponse
from gateway.schemas.ingestion import EmbedFileRequest, EmbedFileResponse, FileRecord
from gateway.schemas.syllabus import AnalyzeSyllabusRequest, SyllabusInfo

__all__ = [
    "AnalysisRequest",
    "AnalysisResponse",
    "ChatRequest",
    "ChatResponse",
    "ConversationMessage",
    "ImportRequest",
    "ImportResponse",
    "EmbedFileRequest",
    "EmbedFileResponse",
    "FileRecord",
    "AnalyzeSyllabusRequest",
    "SyllabusInfo",
]
