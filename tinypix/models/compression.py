"""
Wire models for the compression API.

JSON bodies use camelCase keys; the models accept either spelling when
parsing so the client can validate server responses with the same types.
"""
from typing import List, Optional, Literal
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base class serializing field names as camelCase"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CompressedImage(CamelModel):
    """Result for one file of a batch compression request"""
    original_name: str = Field(..., description="File name as uploaded")
    original_size: int = Field(..., description="Size of the uploaded file in bytes")
    status: Literal["success", "failed"] = Field(..., description="Outcome for this file")
    compressed_size: Optional[int] = Field(None, description="Size of the compressed file in bytes")
    compression_ratio: Optional[float] = Field(
        None, description="Signed space savings, (original - compressed) / original * 100"
    )
    compressed_data: Optional[str] = Field(None, description="Base64 encoded compressed image")
    mime_type: Optional[str] = Field(None, description="Content type of the compressed image")
    download_url: Optional[str] = Field(None, description="URL of the stored artifact")
    width: Optional[int] = Field(None, description="Pixel width")
    height: Optional[int] = Field(None, description="Pixel height")
    compression_time: Optional[float] = Field(None, description="Encoding time in seconds")
    psnr: Optional[float] = Field(None, description="Peak Signal-to-Noise Ratio against the original")
    ssim: Optional[float] = Field(None, description="Structural Similarity Index against the original")
    error: Optional[str] = Field(None, description="Failure reason when status is failed")


class CompressResponse(CamelModel):
    """Response model for batch compression"""
    success: bool
    message: str
    results: List[CompressedImage]


class HealthResponse(BaseModel):
    status: str
    message: str
    version: str


class ArtifactInfo(BaseModel):
    """Information about a stored compressed artifact"""
    filename: str = Field(..., description="Stored artifact name")
    size: int = Field(..., description="Size in bytes")
    created: float = Field(..., description="Creation time as a UNIX timestamp")
