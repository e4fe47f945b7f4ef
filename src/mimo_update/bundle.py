"""
Resource bundle handling.

The installer ships a ``resources.tar.gz`` next to a ``resources.sha256``
file holding its hex digest. The archive is verified before anything is
unpacked.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tarfile
from pathlib import Path
from typing import Union

from mimo_common.exceptions import BundleError, ChecksumError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


class ResourceBundle:
    """A checksummed tar.gz of update resources."""

    def __init__(self, archive: Union[str, Path], checksum_file: Union[str, Path]):
        self.archive = Path(archive)
        self.checksum_file = Path(checksum_file)

    def digest(self) -> str:
        """SHA-256 of the archive, lowercase hex."""
        sha = hashlib.sha256()
        try:
            with open(self.archive, "rb") as f:
                for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                    sha.update(chunk)
        except OSError as e:
            raise BundleError(str(self.archive), f"cannot read archive: {e}")
        return sha.hexdigest()

    def expected_digest(self) -> str:
        try:
            text = self.checksum_file.read_text().strip()
        except OSError as e:
            raise BundleError(str(self.checksum_file), f"cannot read checksum: {e}")
        # Accept both a bare digest and `sha256sum` output.
        return text.split()[0].lower() if text else ""

    def verify(self) -> None:
        """
        Compare the archive digest with the checksum file.

        Raises:
            ChecksumError: digests differ.
            BundleError: archive or checksum file unreadable.
        """
        expected = self.expected_digest()
        actual = self.digest()
        if actual != expected:
            raise ChecksumError(self.archive.name, expected, actual)
        logger.info("Resources verified")

    def extract(self, dest: Union[str, Path]) -> int:
        """
        Unpack the archive into ``dest``.

        Directories, regular files (with their archived mode) and symlinks
        are created; symlink targets are re-rooted under ``dest``. Other
        entry types are skipped with a warning.

        Returns:
            Number of skipped entries.

        Raises:
            BundleError: unreadable archive or an entry escaping ``dest``.
        """
        dest = Path(dest).resolve()
        dest.mkdir(parents=True, exist_ok=True)
        logger.info("Extracting resources; this may take some time...")

        skipped = 0
        try:
            with tarfile.open(self.archive, "r:gz") as tar:
                for member in tar:
                    target = Path(os.path.normpath(dest / member.name))
                    if target != dest and dest not in target.parents:
                        raise BundleError(str(self.archive), f"entry escapes destination: {member.name}")

                    if member.isdir():
                        target.mkdir(parents=True, exist_ok=True)
                    elif member.isfile():
                        target.parent.mkdir(parents=True, exist_ok=True)
                        source = tar.extractfile(member)
                        with source, open(target, "wb") as out:
                            for chunk in iter(lambda: source.read(CHUNK_SIZE), b""):
                                out.write(chunk)
                        os.chmod(target, member.mode & 0o7777)
                    elif member.issym():
                        target.parent.mkdir(parents=True, exist_ok=True)
                        if os.path.lexists(target):
                            target.unlink()
                        link = dest / member.linkname.lstrip("/")
                        os.symlink(link, target)
                    else:
                        skipped += 1
        except (tarfile.TarError, OSError) as e:
            raise BundleError(str(self.archive), f"failed to read archive: {e}")

        if skipped:
            logger.warning(f"{skipped} archive entries were skipped")
        logger.info("Extraction completed")
        return skipped
