from pydantic import BaseModel, Field


class CmdArgs(BaseModel):
    """Arguments of one plugin invocation, gathered from CNI_* variables and stdin."""

    container_id: str = Field(..., min_length=1)
    netns: str = ""
    if_name: str = Field(..., min_length=1)
    args: str = ""  # raw CNI_ARGS, ';'-separated key=value pairs
    path: str = ""
    stdin_data: bytes = b""
