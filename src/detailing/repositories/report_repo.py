from __future__ import annotations

from datetime import datetime

from ..api import ApiSession
from ..domain import MasterDetailReport, MasterWeeklyReport
from ..mapping import detail_report_from_api, weekly_report_from_api


def _range_params(start: datetime, end: datetime) -> dict:
    return {"start": start.isoformat(timespec="seconds"), "end": end.isoformat(timespec="seconds")}


class ReportRepository:
    def masters_weekly(self, api: ApiSession, *, start: datetime, end: datetime) -> list[MasterWeeklyReport]:
        rows = api.get("/reports/masters-weekly", params=_range_params(start, end))
        return [weekly_report_from_api(r) for r in rows or ()]

    def master_detail(self, api: ApiSession, master_id: int, *, start: datetime, end: datetime) -> MasterDetailReport:
        return detail_report_from_api(
            api.get(f"/reports/master-detail/{master_id}", params=_range_params(start, end))
        )
