"""Owning contexts for source records.

A record belongs either to a study, which supplies its key generator and
channel limits, or to a standalone import set. Records with neither draw
temporary keys.
"""

from __future__ import annotations

from domain.sources.keys import KeyGenerator, StudyKeyGenerator
from domain.sources.repositories import ParameterLookup
from domain.sources.value_objects import CHANNEL_MAX, CHANNEL_MIN


class StudyContext:
    """Study-level settings consulted by records of that study.

    Parameters
    ----------
    db_id: str
        Identifier of the database holding the study; derivation into a
        different database clears primary-record references.
    min_channel, max_channel: int
        Channel range allowed for operating sources in this study.
    parameters: ParameterLookup | None
        Regulatory parameter tables, when the study has them loaded.
    """

    def __init__(
        self,
        db_id: str,
        key_generator: KeyGenerator | None = None,
        min_channel: int = CHANNEL_MIN,
        max_channel: int = CHANNEL_MAX,
        parameters: ParameterLookup | None = None,
        name: str = "",
    ) -> None:
        if not (CHANNEL_MIN <= min_channel <= max_channel <= CHANNEL_MAX):
            raise ValueError(
                f"Invalid study channel range {min_channel}-{max_channel}"
            )
        self.db_id = db_id
        self.key_generator = key_generator or StudyKeyGenerator()
        self.min_channel = min_channel
        self.max_channel = max_channel
        self.parameters = parameters
        self.name = name

    def __repr__(self) -> str:
        return f"StudyContext(db_id={self.db_id!r}, name={self.name!r})"


class ImportSet:
    """A standalone set of imported records mirroring one external data set."""

    def __init__(
        self, ext_db_key: int | None = None, key_generator: KeyGenerator | None = None
    ) -> None:
        self.ext_db_key = ext_db_key
        self.key_generator = key_generator or StudyKeyGenerator()
