from dataclasses import dataclass


@dataclass(frozen=True)
class ProcessedImage:
    base64: str
    mime_type: str
    width: int
    height: int
