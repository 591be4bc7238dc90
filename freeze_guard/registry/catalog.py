from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from freeze_guard.core.errors import ValidationError
from freeze_guard.core.host_context import HostContext
from freeze_guard.core.setting import Setting


class Catalog:
    """
    Ordered registry of settings. Iteration order is registration order,
    which is also the order the reconciler visits them.
    """

    def __init__(self, settings: Iterable[Setting] = ()) -> None:
        self._settings: Dict[str, Setting] = {}
        for s in settings:
            self.register(s)

    def register(self, setting: Setting) -> None:
        if setting.setting_id in self._settings:
            raise ValidationError(
                code="catalog.duplicate_setting",
                message=f"Duplicate setting id: {setting.setting_id}",
                data={"setting_id": setting.setting_id},
            )
        self._settings[setting.setting_id] = setting

    def get(self, setting_id: str) -> Optional[Setting]:
        return self._settings.get(setting_id)

    def ids(self) -> List[str]:
        return list(self._settings.keys())

    def __iter__(self) -> Iterator[Setting]:
        return iter(list(self._settings.values()))

    def __len__(self) -> int:
        return len(self._settings)

    def __contains__(self, setting_id: object) -> bool:
        return setting_id in self._settings

    def applicable(self, host: HostContext) -> List[Setting]:
        return [s for s in self._settings.values() if s.applies(host)]

    def without(self, setting_ids: Iterable[str], *, strict: bool = True) -> "Catalog":
        drop = set(setting_ids)
        unknown = sorted(drop - set(self._settings))
        if unknown and strict:
            raise ValidationError(
                code="config.unknown_setting",
                message="Unknown setting id(s): {}".format(", ".join(unknown)),
                data={"setting_ids": unknown},
            )
        return Catalog(s for s in self._settings.values() if s.setting_id not in drop)

    def merged(self, other: "Catalog") -> "Catalog":
        out = Catalog(self)
        for s in other:
            out.register(s)
        return out

    def list_settings(self) -> List[dict]:
        return [s.describe() for s in self._settings.values()]
