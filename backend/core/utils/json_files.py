import json
import os
import uuid
from typing import Any

import aiofiles
import aiofiles.os


async def read_json(path: str) -> Any:
    """Read and decode a JSON document. Raises FileNotFoundError when absent."""
    async with aiofiles.open(path, "r", encoding="utf-8") as f:
        content = await f.read()
    return json.loads(content)


async def write_json_atomic(path: str, data: Any) -> None:
    """
    Write a JSON document so readers see either the old or the new content.

    The document goes to a temporary file beside the target which then
    replaces it; on failure the temporary file is removed and the target is
    left untouched.
    """
    directory = os.path.dirname(os.path.abspath(path))
    await aiofiles.os.makedirs(directory, exist_ok=True)

    tmp_path = os.path.join(directory, f".{os.path.basename(path)}.{uuid.uuid4().hex}.tmp")
    try:
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(data, indent=2, ensure_ascii=False))
        await aiofiles.os.replace(tmp_path, path)
    except BaseException:
        if await aiofiles.os.path.exists(tmp_path):
            await aiofiles.os.remove(tmp_path)
        raise
