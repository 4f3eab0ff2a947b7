"""
Packaging of reconstruction assets into a downloadable zip archive.

Layout (inside ``downloads/``)::

    base-image.<fmt>
    displacement-map.<fmt>
    <overlayName>.<fmt>      one per available overlay
    3d-model.glb
"""

from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import Mapping, Optional, Sequence, Union

import cv2
import numpy as np

from ..config import EXPORT_CONFIG
from ..geometry.types import MeshDescriptor
from ..utils import decode_image, encode_image, ensure_directory, mime_to_extension
from ..utils.exceptions import ExportError, FaceReconstructionError
from ..utils.logging_utils import get_logger, log_execution_time
from .gltf import export_glb

logger = get_logger(__name__)


def transcode(data: bytes, fmt: str) -> bytes:
    """Re-encode image bytes into ``fmt``; PNG input for PNG output is passed through."""
    extension = mime_to_extension(fmt)
    if extension == "png" and data[:8] == b"\x89PNG\r\n\x1a\n":
        return data
    image = decode_image(data, cv2.IMREAD_UNCHANGED)
    # JPEG and BMP carry no alpha channel
    if extension in ("jpg", "bmp") and image.ndim == 3 and image.shape[2] == 4:
        image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)
    return encode_image(image, fmt)


@log_execution_time()
def build_asset_archive(
    image: np.ndarray,
    depth_map: Optional[bytes],
    overlays: Mapping[str, Optional[bytes]],
    model: Optional[MeshDescriptor],
    overlay_types: Sequence[str] = tuple(EXPORT_CONFIG["overlay_types"]),
    fmt: str = "image/png",
    folder: str = EXPORT_CONFIG["folder"],
) -> bytes:
    """
    Build the asset archive in memory.

    Args:
        image: Source photo (BGR)
        depth_map: Encoded displacement map
        overlays: Encoded overlay images keyed by export name
        model: Surface mesh exported as ``3d-model.glb``
        overlay_types: Overlay names to include, in order
        fmt: Image format (MIME type) for every raster asset
        folder: Top-level folder inside the archive

    Returns:
        Zip archive bytes

    Raises:
        ExportError: if any asset cannot be produced
    """
    extension = mime_to_extension(fmt)
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            if image is not None:
                archive.writestr(f"{folder}/base-image.{extension}", encode_image(image, fmt))

            if depth_map:
                archive.writestr(f"{folder}/displacement-map.{extension}", transcode(depth_map, fmt))

            for overlay in overlay_types:
                data = overlays.get(overlay)
                if data:
                    archive.writestr(f"{folder}/{overlay}.{extension}", transcode(data, fmt))

            if model is not None:
                archive.writestr(f"{folder}/{EXPORT_CONFIG['model_name']}", export_glb(model))
            else:
                logger.warning("No mesh to export; archive will not contain a 3D model")
    except ExportError:
        raise
    except (FaceReconstructionError, zipfile.BadZipFile, OSError) as e:
        logger.error(f"Error packaging assets: {e}")
        raise ExportError("Failed to download assets.", asset="archive", cause=e) from e

    return buffer.getvalue()


def write_archive(data: bytes, path: Union[str, Path]) -> Path:
    """Write archive bytes to ``path`` (a directory gets the default archive name)."""
    path = Path(path)
    if path.is_dir() or not path.suffix:
        path = ensure_directory(path) / EXPORT_CONFIG["archive_name"]
    else:
        ensure_directory(path.parent)
    path.write_bytes(data)
    logger.info(f"Saved assets to {path}")
    return path
