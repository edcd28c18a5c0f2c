"""
Locates the model card layer of a ModelCar image and pulls the single
markdown document out of it.
"""
import io
import logging
import tarfile
import zlib
from typing import Callable, Iterable, Iterator, Optional, Sequence, Tuple, Union

from .schemas import BlobDescriptor, ModelCardDocument

logger = logging.getLogger(__name__)

LAYER_TYPE_ANNOTATION = "io.opendatahub.modelcar.layer.type"
MODELCARD_LAYER_TYPE = "modelcard"

BlobFetcher = Callable[[BlobDescriptor], bytes]


def find_modelcard_descriptor(descriptors: Sequence[BlobDescriptor]) -> Optional[BlobDescriptor]:
    """Return the first descriptor annotated as a model card layer."""
    for descriptor in descriptors:
        if descriptor.annotations.get(LAYER_TYPE_ANNOTATION) == MODELCARD_LAYER_TYPE:
            return descriptor
    return None


def locate_modelcard_layer(
    descriptors: Sequence[BlobDescriptor], fetch_blob: BlobFetcher
) -> Optional[Tuple[BlobDescriptor, bytes]]:
    """
    Find the model card layer and fetch its bytes.

    Returns None when no descriptor carries the model card annotation. Errors
    raised by ``fetch_blob`` are not caught here.
    """
    descriptor = find_modelcard_descriptor(descriptors)
    if descriptor is None:
        logger.info("No model card layer among %d layers", len(descriptors))
        return None
    logger.debug(f"Fetching model card layer {descriptor.digest}")
    return descriptor, fetch_blob(descriptor)


def is_gzip_media_type(media_type: str) -> bool:
    media_type = (media_type or "").lower()
    return media_type.endswith("+gzip") or media_type.endswith(".gzip")


def iter_archive_entries(stream: Union[bytes, io.BufferedIOBase], compressed: bool) -> Iterator[Tuple[str, Callable[[], bytes]]]:
    """
    Walk a tar stream in encounter order, yielding ``(name, read)`` for regular files.

    The stream is read sequentially; an entry's data is only buffered if ``read`` is called.
    """
    if isinstance(stream, (bytes, bytearray)):
        stream = io.BytesIO(stream)
    mode = "r|gz" if compressed else "r|"
    with tarfile.open(fileobj=stream, mode=mode) as archive:
        for member in archive:
            if not member.isfile():
                continue
            yield member.name, lambda m=member: archive.extractfile(m).read()


def extract_markdown(entries: Iterable[Tuple[str, Callable[[], bytes]]]) -> Optional[ModelCardDocument]:
    """
    Keep exactly one markdown document.

    Zero ``.md`` entries gives None. A second ``.md`` entry stops the scan and
    also gives None, since there is no way to tell which one is the model card.
    """
    found: Optional[ModelCardDocument] = None
    for name, read in entries:
        if not name.lower().endswith(".md"):
            continue
        if found is not None:
            logger.warning(f"Ambiguous model card layer: both {found.filename} and {name} are markdown")
            return None
        found = ModelCardDocument(filename=name, raw_bytes=read())
    return found


def read_modelcard(blob: bytes, media_type: str = "") -> Optional[ModelCardDocument]:
    """Decode a model card layer blob. Malformed archives are reported as absent."""
    try:
        return extract_markdown(iter_archive_entries(blob, is_gzip_media_type(media_type)))
    except (tarfile.TarError, zlib.error, EOFError, OSError) as e:
        logger.warning(f"Malformed model card layer ({media_type or 'unknown media type'}): {e}")
        return None
