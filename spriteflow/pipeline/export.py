"""
Export: pack the graph's generated outputs into one zip.

  previews/<id>.png
  animations/<id>.mp4
  frames/<cut-id>/frame_###.png
  sheets/<cut-id>.png          (frames laid out left to right)
  manifest.json
"""

import json
import logging
import zipfile
from io import BytesIO
from typing import Callable, Optional

from PIL import Image

from .models import CutFrame, GraphSnapshot, NodeKind, NodeStatus

logger = logging.getLogger(__name__)

BackgroundRemover = Callable[[bytes], bytes]

_EXTENSIONS = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/webm": "webm",
}


def _extension(mime_type: Optional[str], default: str) -> str:
    return _EXTENSIONS.get(mime_type or "", default)


def build_sprite_sheet(frames: list[CutFrame]) -> bytes:
    """Horizontal strip of equally sized cells, one per frame."""
    images = [Image.open(BytesIO(f.data)).convert("RGBA") for f in frames]
    cell_w = max(img.width for img in images)
    cell_h = max(img.height for img in images)

    sheet = Image.new("RGBA", (cell_w * len(images), cell_h), (0, 0, 0, 0))
    for i, img in enumerate(images):
        x = i * cell_w + (cell_w - img.width) // 2
        y = (cell_h - img.height) // 2
        sheet.paste(img, (x, y), img)

    output = BytesIO()
    sheet.save(output, format="PNG")
    return output.getvalue()


def build_export(
    graph: GraphSnapshot,
    remove_background: Optional[BackgroundRemover] = None,
) -> bytes:
    """
    Zip every ready output in the graph.

    When remove_background is given it is applied to each cut frame before
    the frame and the sprite sheet are written.
    """
    manifest = {"nodes": [], "edges": [e.model_dump() for e in graph.edges]}
    buf = BytesIO()

    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        for node in graph.nodes:
            entry = {
                "id": node.id,
                "kind": node.kind.value,
                "status": node.status.value,
                "label": node.label,
                "files": [],
            }
            manifest["nodes"].append(entry)
            if node.status != NodeStatus.READY:
                continue

            payload = node.payload
            if node.kind == NodeKind.PREVIEW and payload.image is not None:
                path = f"previews/{node.id}.{_extension(payload.mime_type, 'png')}"
                zf.writestr(path, payload.image)
                entry["files"].append(path)

            elif node.kind == NodeKind.ANIMATION and payload.video is not None:
                path = f"animations/{node.id}.{_extension(payload.mime_type, 'mp4')}"
                zf.writestr(path, payload.video)
                entry["animation_kind"] = payload.animation_kind.value
                entry["files"].append(path)

            elif node.kind == NodeKind.CUT and payload.frames:
                frames = payload.frames
                if remove_background is not None:
                    frames = [
                        f.model_copy(update={"data": remove_background(f.data)})
                        for f in frames
                    ]
                for frame in frames:
                    path = f"frames/{node.id}/{frame.filename}"
                    zf.writestr(path, frame.data)
                    entry["files"].append(path)

                sheet_path = f"sheets/{node.id}.png"
                zf.writestr(sheet_path, build_sprite_sheet(frames))
                entry["files"].append(sheet_path)
                entry["frame_count"] = len(frames)
                entry["fps"] = payload.fps

        zf.writestr("manifest.json", json.dumps(manifest, indent=2))

    logger.info(f"Export built: {len(graph.nodes)} nodes, {len(buf.getvalue())} bytes")
    return buf.getvalue()
