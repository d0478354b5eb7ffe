"""File-backed vector index of a single scope.

All points of a scope live in one JSON file (``index.json``) inside the
scope directory. The file is loaded once, kept in memory, and rewritten
atomically after every mutation. Similarity search is a brute-force cosine
scan with numpy, which is plenty for knowledge-base sized collections.
"""

import asyncio
import json
import logging
import os
from typing import Any, Callable

import numpy as np

INDEX_FILE_NAME = "index.json"
INDEX_FORMAT_VERSION = 1


class LocalIndex:
    def __init__(self, directory: str, logger: logging.Logger):
        self.directory = directory
        self.path = os.path.join(directory, INDEX_FILE_NAME)
        self.logging = logger
        self._items: list[dict[str, Any]] = []
        self._positions: dict[str, int] = {}
        self._matrix: np.ndarray | None = None
        self._lock = asyncio.Lock()

    ##########################################
    ################ LIFECYCLE ###############
    ##########################################

    async def do_open(self) -> None:
        """Load the index from disk, creating an empty index file if none exists.

        An unreadable or corrupt index file is treated like a missing one.
        """
        async with self._lock:
            items = await asyncio.to_thread(self._read_items)
            if items is None:
                items = []
                await asyncio.to_thread(self._write_items, items)
            self._set_items(items)

    async def do_destroy(self) -> None:
        """Delete the index file and the scope directory if nothing else lives in it."""
        async with self._lock:
            await asyncio.to_thread(self._remove_files)
            self._set_items([])

    ##########################################
    ################ MUTATIONS ###############
    ##########################################

    async def do_upsert(self, points: list[dict[str, Any]]) -> None:
        async with self._lock:
            items = list(self._items)
            positions = dict(self._positions)
            for point in points:
                item = {
                    "id": point["id"],
                    "vector": [float(v) for v in point["vector"]],
                    "payload": point.get("payload") or {},
                }
                position = positions.get(item["id"])
                if position is None:
                    positions[item["id"]] = len(items)
                    items.append(item)
                else:
                    items[position] = item
            await asyncio.to_thread(self._write_items, items)
            self._set_items(items)

    async def do_delete_where(self, predicate: Callable[[dict[str, Any]], bool]) -> int:
        """Delete all points whose payload satisfies the predicate.

        Returns:
            int: The number of deleted points.
        """
        async with self._lock:
            kept = [item for item in self._items if not predicate(item["payload"])]
            removed = len(self._items) - len(kept)
            if removed:
                await asyncio.to_thread(self._write_items, kept)
                self._set_items(kept)
            return removed

    ##########################################
    ################# QUERIES ################
    ##########################################

    def count(self) -> int:
        return len(self._items)

    def search(self, vector: list[float], limit: int) -> list[dict[str, Any]]:
        """Cosine nearest-neighbour scan.

        Returns:
            list[dict[str, Any]]: Up to limit hits ({"id", "distance", "payload"}),
                closest first; equal distances keep insertion order.
        """
        if not self._items or limit <= 0:
            return []
        query = np.asarray(vector, dtype=np.float64)
        matrix = self._get_matrix()
        if matrix is None or matrix.shape[1] != query.shape[0]:
            self.logging.warning(
                "Vector dimension mismatch in %s (index %s, query %d); returning no hits.",
                self.path, None if matrix is None else matrix.shape[1], query.shape[0],
            )
            return []

        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        dots = matrix @ query
        similarities = np.divide(dots, norms, out=np.zeros_like(dots), where=norms > 0)
        distances = 1.0 - similarities
        order = np.argsort(distances, kind="stable")[:limit]
        return [
            {
                "id": self._items[i]["id"],
                "distance": float(distances[i]),
                "payload": self._items[i]["payload"],
            }
            for i in order
        ]

    ##########################################
    ################ HELPERS #################
    ##########################################

    def _set_items(self, items: list[dict[str, Any]]) -> None:
        self._items = items
        self._positions = {item["id"]: i for i, item in enumerate(items)}
        self._matrix = None

    def _get_matrix(self) -> np.ndarray | None:
        if self._matrix is None:
            dimensions = {len(item["vector"]) for item in self._items}
            if len(dimensions) != 1:
                return None
            self._matrix = np.asarray([item["vector"] for item in self._items], dtype=np.float64)
        return self._matrix

    def _read_items(self) -> list[dict[str, Any]] | None:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, json.JSONDecodeError) as exc:
            self.logging.warning("Vector index %s is unreadable (%s); starting empty.", self.path, exc)
            return None
        items = data.get("items") if isinstance(data, dict) else None
        if not isinstance(items, list):
            self.logging.warning("Vector index %s has no item list; starting empty.", self.path)
            return None
        return [item for item in items if isinstance(item, dict) and "id" in item and "vector" in item]

    def _write_items(self, items: list[dict[str, Any]]) -> None:
        os.makedirs(self.directory, exist_ok=True)
        tmp_path = f"{self.path}.tmp"
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump({"version": INDEX_FORMAT_VERSION, "items": items}, f)
        os.replace(tmp_path, self.path)

    def _remove_files(self) -> None:
        for path in (self.path, f"{self.path}.tmp"):
            try:
                os.remove(path)
            except FileNotFoundError:
                pass
        try:
            os.rmdir(self.directory)
        except (FileNotFoundError, OSError):
            # directory still holds other files (e.g. index metadata) or is gone
            pass
