from __future__ import annotations

from dataclasses import dataclass

from pressledger.core.errors import ValidationError


@dataclass(frozen=True)
class DisplayStock:
    reams: int
    sheets: int

    @property
    def label(self) -> str:
        """'2 reams, 3 sheets' / '1 ream' / '7 sheets'"""
        ream_part = f"{self.reams} ream{'s' if self.reams != 1 else ''}"
        sheet_part = f"{self.sheets} sheet{'s' if self.sheets != 1 else ''}"
        if self.reams > 0 and self.sheets > 0:
            return f"{ream_part}, {sheet_part}"
        if self.reams > 0:
            return ream_part
        return sheet_part

    @property
    def short_label(self) -> str:
        if self.reams > 0 and self.sheets > 0:
            return f"{self.reams}r {self.sheets}s"
        if self.reams > 0:
            return f"{self.reams}r"
        return f"{self.sheets}s"


def _require_int(name: str, v: object) -> int:
    if isinstance(v, bool) or not isinstance(v, int):
        raise ValidationError(f"{name} must be an integer", {"field": name, "value": repr(v)})
    return v


def to_sheets(reams: int, loose_sheets: int, sheets_per_unit: int) -> int:
    reams = _require_int("reams", reams)
    loose_sheets = _require_int("sheets", loose_sheets)
    sheets_per_unit = _require_int("sheets_per_unit", sheets_per_unit)
    if sheets_per_unit <= 0:
        raise ValidationError("sheets_per_unit must be > 0", {"field": "sheets_per_unit", "value": sheets_per_unit})
    if reams < 0:
        raise ValidationError("reams must be >= 0", {"field": "reams", "value": reams})
    if loose_sheets < 0:
        raise ValidationError("sheets must be >= 0", {"field": "sheets", "value": loose_sheets})
    return reams * sheets_per_unit + loose_sheets


def to_display(total_sheets: int, sheets_per_unit: int) -> DisplayStock:
    total_sheets = _require_int("total_sheets", total_sheets)
    sheets_per_unit = _require_int("sheets_per_unit", sheets_per_unit)
    if sheets_per_unit <= 0:
        raise ValidationError("sheets_per_unit must be > 0", {"field": "sheets_per_unit", "value": sheets_per_unit})
    if total_sheets < 0:
        raise ValidationError("total_sheets must be >= 0", {"field": "total_sheets", "value": total_sheets})
    reams, sheets = divmod(total_sheets, sheets_per_unit)
    return DisplayStock(reams=reams, sheets=sheets)
