"""Prospect contacts kept in a flat JSON file shaped {"data": [...]}."""
import datetime
import json
import logging
import os
import time
import uuid

from config import PROSPECTS_FILE

logger = logging.getLogger(__name__)


class ProspectStore:
    def __init__(self, path=PROSPECTS_FILE):
        self.path = path

    def _read(self):
        if not os.path.exists(self.path):
            return {"data": []}
        with open(self.path, "r") as f:
            return json.load(f)

    def _write(self, prospects):
        directory = os.path.dirname(self.path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(self.path, "w") as f:
            json.dump(prospects, f, indent=2)

    def list(self):
        return self._read()

    def get(self, prospect_id):
        for prospect in self._read()["data"]:
            if prospect.get("id") == prospect_id:
                return prospect
        return None

    def create(self, fields):
        prospects = self._read()
        now = datetime.datetime.now(datetime.timezone.utc).isoformat()
        prospect = {
            "id": f"cmi{int(time.time() * 1000)}{uuid.uuid4().hex[:9]}",
            **fields,
            "createdAt": now,
            "lastMessageAt": now,
            "_count": {"messages": 0},
        }
        prospects["data"].append(prospect)
        self._write(prospects)
        logger.info(f"Created prospect {prospect['id']}")
        return prospect

    def update(self, prospect_id, fields):
        prospects = self._read()
        for index, prospect in enumerate(prospects["data"]):
            if prospect.get("id") == prospect_id:
                prospects["data"][index] = {**prospect, **fields, "id": prospect_id}
                self._write(prospects)
                return prospects["data"][index]
        return None

    def delete(self, prospect_id):
        prospects = self._read()
        remaining = [p for p in prospects["data"] if p.get("id") != prospect_id]
        if len(remaining) == len(prospects["data"]):
            return False
        prospects["data"] = remaining
        self._write(prospects)
        logger.info(f"Deleted prospect {prospect_id}")
        return True
