import json
import logging
import os
from pathlib import Path
from typing import List, Type, Union

from pydantic import TypeAdapter, ValidationError

from modules.common.schemas import CamelModel
from modules.offline.models import OfflineSignatureItem

logger = logging.getLogger(__name__)


class OfflineQueueStore:
    """Persistencia local de la cola en un archivo JSON (permisos 0600)."""

    def __init__(self, path: Union[str, Path], item_model: Type[CamelModel] = OfflineSignatureItem):
        self.path = Path(path)
        self._adapter = TypeAdapter(List[item_model])

    def load(self) -> List[CamelModel]:
        if not self.path.exists():
            return []
        try:
            raw = self.path.read_text(encoding="utf-8")
            return self._adapter.validate_json(raw) if raw.strip() else []
        except (OSError, ValidationError) as exc:
            logger.error("No se pudo leer la cola offline %s: %s", self.path, exc)
            raise

    def save(self, items: List[CamelModel]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(
            [item.model_dump(mode="json", by_alias=True) for item in items],
            ensure_ascii=False,
            indent=2,
        )
        tmp = self.path.with_name(self.path.name + ".tmp")
        fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(payload)
        os.replace(tmp, self.path)
        os.chmod(self.path, 0o600)
