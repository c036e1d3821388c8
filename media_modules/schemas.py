"""
Response schemas for the GraphQL and REST shapes used by the upload pipeline.

Every payload is decoded through decode_payload(), which turns a shape
mismatch into a ResponseShapeError naming the step instead of letting a
missing key surface later as a None.
"""

import json
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .exceptions import ResponseShapeError


class _Schema(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class UserError(_Schema):
    field: Optional[List[str]] = None
    message: str = ""
    code: Optional[str] = None


# ---------------------------------------------------------------------------
# stagedUploadsCreate
# ---------------------------------------------------------------------------

class StagedUploadParameter(_Schema):
    name: str
    value: str


class UploadTarget(_Schema):
    """
    A single-use direct upload target.

    The parameter list is kept in the order the platform returned it: the
    storage backend signs the form fields, so reordering or dropping any of
    them invalidates the request.
    """

    url: str
    resource_url: str = Field(alias="resourceUrl")
    parameters: List[StagedUploadParameter] = Field(default_factory=list)
    http_method: str = Field(default="POST", alias="httpMethod")

    def parameter_pairs(self) -> List[Tuple[str, str]]:
        return [(p.name, p.value) for p in self.parameters]


class StagedUploadsCreatePayload(_Schema):
    staged_targets: Optional[List[UploadTarget]] = Field(default=None, alias="stagedTargets")
    user_errors: List[UserError] = Field(default_factory=list, alias="userErrors")


# ---------------------------------------------------------------------------
# Files (fileCreate / fileUpdate / node query)
# ---------------------------------------------------------------------------

class AssetStatus(str, Enum):
    UPLOADED = "UPLOADED"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class ImageFields(_Schema):
    width: Optional[int] = None
    height: Optional[int] = None
    url: Optional[str] = None
    src: Optional[str] = None
    original_src: Optional[str] = Field(default=None, alias="originalSrc")
    transformed_src: Optional[str] = Field(default=None, alias="transformedSrc")


class MediaPreview(_Schema):
    image: Optional[ImageFields] = None
    status: Optional[str] = None


class FileError(_Schema):
    code: Optional[str] = None
    message: str = ""
    details: Optional[str] = None


class VideoSource(_Schema):
    url: Optional[str] = None


class AssetMedia(_Schema):
    width: Optional[int] = None
    height: Optional[int] = None
    url: Optional[str] = None
    original_url: Optional[str] = None
    transformed_url: Optional[str] = None


class AssetHandle(_Schema):
    """A managed file as returned by fileCreate, fileUpdate or a node query."""

    id: str
    status: AssetStatus = Field(alias="fileStatus")
    alt: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    # GenericFile and Video expose their URL at the top level
    url: Optional[str] = None
    image: Optional[ImageFields] = None
    preview: Optional[MediaPreview] = None
    sources: List[VideoSource] = Field(default_factory=list)
    file_errors: List[FileError] = Field(default_factory=list, alias="fileErrors")

    @property
    def media(self) -> Optional[AssetMedia]:
        if self.image is None:
            return None
        return AssetMedia(
            width=self.image.width,
            height=self.image.height,
            url=self.image.url or self.image.src,
            original_url=self.image.original_src,
            transformed_url=self.image.transformed_src,
        )

    @property
    def is_failed(self) -> bool:
        return self.status == AssetStatus.FAILED

    def first_available_url(self) -> Optional[str]:
        """
        Return the first populated URL among the representations the platform
        fills in asynchronously: rendered, original, transformed, preview.
        """
        media = self.media
        candidates = []
        if media is not None:
            candidates.extend([media.url, media.original_url, media.transformed_url])
        candidates.append(self.url)
        candidates.extend(source.url for source in self.sources)
        if self.preview is not None and self.preview.image is not None:
            candidates.append(self.preview.image.url)
        for candidate in candidates:
            if candidate:
                return candidate
        return None


class FileCreatePayload(_Schema):
    files: Optional[List[AssetHandle]] = None
    user_errors: List[UserError] = Field(default_factory=list, alias="userErrors")


class FileUpdatePayload(_Schema):
    files: Optional[List[AssetHandle]] = None
    user_errors: List[UserError] = Field(default_factory=list, alias="userErrors")


class FileNodeData(_Schema):
    node: Optional[AssetHandle] = None


# ---------------------------------------------------------------------------
# Metafields
# ---------------------------------------------------------------------------

class Metafield(_Schema):
    id: Optional[str] = None
    namespace: str
    key: str
    value: str
    type: Optional[str] = None


class MetafieldsSetPayload(_Schema):
    metafields: Optional[List[Metafield]] = None
    user_errors: List[UserError] = Field(default_factory=list, alias="userErrors")


class MetafieldIdentifier(_Schema):
    owner_id: str = Field(alias="ownerId")
    namespace: str
    key: str


class MetafieldsDeletePayload(_Schema):
    # Entries are null for identifiers that had nothing stored
    deleted_metafields: Optional[List[Optional[MetafieldIdentifier]]] = Field(
        default=None, alias="deletedMetafields"
    )
    user_errors: List[UserError] = Field(default_factory=list, alias="userErrors")


class _MetafieldEdge(_Schema):
    node: Metafield


class _MetafieldConnection(_Schema):
    edges: List[_MetafieldEdge] = Field(default_factory=list)


class MetafieldOwner(_Schema):
    metafields: _MetafieldConnection = Field(default_factory=_MetafieldConnection)

    def items(self) -> List[Metafield]:
        return [edge.node for edge in self.metafields.edges]


class MetafieldOwnerData(_Schema):
    node: Optional[MetafieldOwner] = None


# ---------------------------------------------------------------------------
# REST product images
# ---------------------------------------------------------------------------

class ProductImage(_Schema):
    id: int
    product_id: Optional[int] = None
    position: Optional[int] = None
    src: Optional[str] = None
    alt: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    variant_ids: List[int] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ProductImageEnvelope(_Schema):
    image: ProductImage


class ProductImagesEnvelope(_Schema):
    images: List[ProductImage] = Field(default_factory=list)


def decode_payload(model, data, step):
    """
    Validate raw response data against a schema model.

    Args:
        model: Pydantic model class describing the expected shape
        data: Decoded JSON value (usually a dict)
        step: Pipeline step name used in the error

    Returns:
        Instance of model

    Raises:
        ResponseShapeError: if data does not match the model
    """
    try:
        return model.model_validate(data)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc']) or '<root>'}: {err['msg']}"
            for err in e.errors()
        )
        try:
            body = json.dumps(data)[:2000]
        except (TypeError, ValueError):
            body = repr(data)[:2000]
        raise ResponseShapeError(
            f"Unexpected {model.__name__} response shape: {problems}",
            step=step,
            response_body=body,
        ) from e
