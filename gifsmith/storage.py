"""
Asset Store - Keeps converted GIFs and their originals on disk.

Layout under the store root:
  uploads/{id}.{ext}   original upload
  gifs/{id}.gif        converted GIF
  manifest.json        one record per conversion

The conversion pipeline never touches the store; callers save its output.
"""

import json
import os
import tempfile
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from .config import OUTPUT_DIR
from .models import EncodedOutput

# Serializes manifest read-modify-write across stores in this process
_manifest_lock = threading.Lock()


class AssetStore:
    """Filesystem-backed record of produced GIFs."""

    def __init__(self, root: Path = OUTPUT_DIR):
        self.root = Path(root)
        self.uploads_dir = self.root / "uploads"
        self.gifs_dir = self.root / "gifs"
        self.manifest_path = self.root / "manifest.json"

    def get_manifest(self) -> dict:
        """Load and return the current manifest."""
        if not self.manifest_path.exists():
            return {"assets": {}}
        with open(self.manifest_path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save_manifest(self, manifest: dict) -> None:
        """Write the manifest via temp file + replace, so readers never see a partial file."""
        self.root.mkdir(parents=True, exist_ok=True)
        handle = tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            prefix=f"{self.manifest_path.name}.",
            suffix=".tmp",
            dir=str(self.root),
            delete=False,
        )
        tmp_path = Path(handle.name)
        try:
            with handle:
                json.dump(manifest, handle, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.manifest_path)
        finally:
            if tmp_path.exists():
                tmp_path.unlink()

    def save(
        self,
        original_bytes: bytes,
        original_name: str,
        output: EncodedOutput,
        owner: str = "",
    ) -> dict:
        """
        Write the original and the GIF, and register them in the manifest.

        Returns:
            The stored record (id, paths relative to the store root, metadata).
        """
        self.uploads_dir.mkdir(parents=True, exist_ok=True)
        self.gifs_dir.mkdir(parents=True, exist_ok=True)

        file_id = str(uuid.uuid4())
        ext = Path(original_name).suffix.lstrip(".").lower() or "jpg"

        (self.uploads_dir / f"{file_id}.{ext}").write_bytes(original_bytes)
        (self.gifs_dir / f"{file_id}.gif").write_bytes(output.data)

        record = {
            "id": file_id,
            "owner": owner,
            "originalFileName": original_name,
            "originalPath": f"/uploads/{file_id}.{ext}",
            "gifPath": f"/gifs/{file_id}.gif",
            "metadata": output.metadata(),
            "warnings": list(output.warnings),
            "created_at": datetime.now().isoformat(),
        }
        with _manifest_lock:
            manifest = self.get_manifest()
            manifest.setdefault("assets", {})[file_id] = record
            self.save_manifest(manifest)
        return record

    def get(self, file_id: str) -> Optional[dict]:
        return self.get_manifest().get("assets", {}).get(file_id)

    def list(self, owner: Optional[str] = None) -> List[dict]:
        """Records, newest first, optionally for one owner."""
        records = list(self.get_manifest().get("assets", {}).values())
        if owner is not None:
            records = [r for r in records if r.get("owner") == owner]
        return sorted(records, key=lambda r: r.get("created_at", ""), reverse=True)

    def gif_path(self, file_id: str) -> Path:
        """Resolve a stored GIF on disk."""
        record = self.get(file_id)
        if record is None:
            raise FileNotFoundError(f"GIF not found: {file_id}")
        return self.root / record["gifPath"].lstrip("/")
