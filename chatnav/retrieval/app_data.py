"""
Permission-scoped lookup of entities in the host application's data store
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

logger = logging.getLogger(__name__)

ENTITY_TYPES = ('widget', 'workspace', 'note', 'entry', 'panel', 'link')

_EXISTENCE_PATTERN = re.compile(
    r"^(do|did|does)\s+(i|we)\s+(have|own|still have)\s+(an?\s+|any\s+|the\s+|my\s+)?"
    r"(?P<type>widget|workspace|note|entry|panel|link)s?\s+"
    r"(called\s+|named\s+)?(?P<name>.+?)\??$",
    re.IGNORECASE
)

_EXISTENCE_PATTERN_ALT = re.compile(
    r"^is\s+there\s+(an?\s+)?(?P<type>widget|workspace|note|entry|panel|link)\s+"
    r"(called\s+|named\s+)?(?P<name>.+?)\??$",
    re.IGNORECASE
)


@dataclass
class AppEntity:
    id: str
    name: str
    entity_type: str
    owner_id: Optional[str] = None
    entry_name: Optional[str] = None


@dataclass
class ExistenceQuestion:
    entity_type: str
    name: str


def parse_existence_question(text: str) -> Optional[ExistenceQuestion]:
    """Recognize "do I have widget X?" style questions"""
    stripped = text.strip()
    for pattern in (_EXISTENCE_PATTERN, _EXISTENCE_PATTERN_ALT):
        match = pattern.match(stripped)
        if match:
            name = match.group('name').strip().strip('"\'')
            if name:
                return ExistenceQuestion(match.group('type').lower(), name)
    return None


class AppDataStore(ABC):
    """Host application data, queried on the user's behalf"""

    @abstractmethod
    def find(self, entity_type: str, name: str, user_id: Optional[str]) -> List[AppEntity]:
        """Entities of `entity_type` named `name` that `user_id` may see"""
        pass


class InMemoryAppDataStore(AppDataStore):

    def __init__(self, entities: Optional[List[AppEntity]] = None):
        self.entities = list(entities or [])

    def add(self, entity: AppEntity) -> None:
        self.entities.append(entity)

    def find(self, entity_type: str, name: str, user_id: Optional[str]) -> List[AppEntity]:
        wanted = name.casefold()
        results = [
            e for e in self.entities
            if e.entity_type == entity_type
            and e.name.casefold() == wanted
            and (e.owner_id is None or e.owner_id == user_id)
        ]
        logger.debug(f"App lookup {entity_type}:{name!r} for {user_id}: {len(results)} result(s)")
        return results
