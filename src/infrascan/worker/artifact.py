import logging
import os
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from src.infrascan.models import Credentials

logger = logging.getLogger(__name__)

ARTIFACT_NAME = "credentials"


@contextmanager
def credentials_artifact(credentials: Credentials, directory: Path) -> Iterator[Path]:
    """
    Writes `credentials` as a shared-credentials profile under `directory`
    and removes the whole directory when the block exits, however it exits.
    """
    directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    path = directory / ARTIFACT_NAME
    try:
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(credentials.to_profile())
        yield path
    finally:
        try:
            shutil.rmtree(directory)
        except FileNotFoundError:
            pass
        except OSError as e:
            # Must not replace whatever error is already propagating
            logger.error("Error cleaning up credentials artifact %s: %s", directory, e)
