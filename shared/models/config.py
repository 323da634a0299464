from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    A single environment setting a client needs before it can boot.

    Attributes:
        env_key (str): Raw key, prefixed by the client with "{TYPE}_{ENGINE}_" (e.g. "BASE_URL" -> "RAG_QDRANT_BASE_URL").
        val_type (str): "string", "number", "bool" or "list".
        default (str | int | float | bool | list | None): Fallback value. None marks the setting as required.
    """

    env_key: str
    val_type: str = "string"
    default: str | int | float | bool | list | None = None
