from pydantic import BaseModel, Field

from shared.models.rag import ProcessDocumentOptions, QueryFilters


class ProcessDocumentRequest(BaseModel):
    file_path: str
    conversation_id: str
    options: ProcessDocumentOptions | None = None


class UploadDocumentRequest(BaseModel):
    file_name: str
    file_data: str = Field(description="Base64 encoded file content.")
    conversation_id: str
    options: ProcessDocumentOptions | None = None


class QueryRequest(BaseModel):
    query: str
    conversation_id: str
    top_k: int = 5
    similarity_threshold: float = 0.7
    embedding_model: str | None = None
    filters: QueryFilters | None = None
