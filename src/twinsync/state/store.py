"""On-disk store for the last observed asset population."""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from twinsync._constants import STATE_FILE_NAME
from twinsync.models.asset import Asset, AssetPopulation

_logger = logging.getLogger(__name__)

_REQUIRED_ASSET_KEYS = ("id", "name", "type")


def _valid_assets(raw: Any) -> list[Asset]:
    """Keep the entries that look like assets; drop the rest."""
    assets: list[Asset] = []
    for entry in raw:
        if not isinstance(entry, dict) or any(key not in entry for key in _REQUIRED_ASSET_KEYS):
            continue
        try:
            assets.append(Asset.model_validate(entry))
        except ValidationError:
            continue
    return assets


def _parse_population(text: str) -> AssetPopulation | None:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        return None
    if not isinstance(parsed, dict):
        return None
    lights = parsed.get("lights")
    sensors = parsed.get("sensors")
    if not isinstance(lights, list) or not isinstance(sensors, list):
        return None
    return AssetPopulation(lights=_valid_assets(lights), sensors=_valid_assets(sensors))


class SnapshotStore:
    """Persist one population per poller as a single JSON document.

    ``save`` writes a sibling temporary file and renames it over the target,
    so a crash mid-write leaves the previous document in place.
    """

    def __init__(self, data_dir: str | os.PathLike[str], file_name: str = STATE_FILE_NAME) -> None:
        self._data_dir = Path(data_dir)
        self._path = self._data_dir / file_name

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> AssetPopulation | None:
        """Return the persisted population, or ``None`` when absent or unusable."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.load_sync)

    async def save(self, population: AssetPopulation) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.save_sync, population)

    def load_sync(self) -> AssetPopulation | None:
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError):
            _logger.warning("Snapshot file %s is unreadable; ignoring it", self._path, exc_info=True)
            return None

        population = _parse_population(text)
        if population is None:
            _logger.warning("Snapshot file %s is corrupt; ignoring it", self._path)
        return population

    def save_sync(self, population: AssetPopulation) -> None:
        self._data_dir.mkdir(parents=True, exist_ok=True)
        document = json.dumps(population.to_payload(), indent=2)

        fd, tmp_name = tempfile.mkstemp(dir=self._data_dir, prefix=f".{self._path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(document)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp_name)
            raise
        _logger.debug(
            "Saved snapshot of %d light(s), %d sensor(s) to %s",
            len(population.lights),
            len(population.sensors),
            self._path,
        )
