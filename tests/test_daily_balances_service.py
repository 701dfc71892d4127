from __future__ import annotations

import unittest
from datetime import date, datetime, timedelta, timezone
from types import SimpleNamespace

from geopoint.errors import ApiError
from geopoint.models import Department, EmployeeRequest, JobTitle, RequestStatus, RequestType, TimeEntryType
from geopoint.services.daily_balances import MAX_RANGE_DAYS, calculate_day_balance, list_daily_balances
from tests.api_support import ApiTestCase
from tests.db_support import SqliteTestCase

MONDAY = date(2026, 3, 2)
SUNDAY = date(2026, 3, 8)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def _punch(entry_type: TimeEntryType, ts_utc: datetime) -> SimpleNamespace:
    return SimpleNamespace(type=entry_type, ts_utc=ts_utc)


class CalculateDayBalanceTests(unittest.TestCase):
    def test_exit_without_entry_is_incomplete(self) -> None:
        result = calculate_day_balance(
            MONDAY,
            [_punch(TimeEntryType.EXIT, _at(MONDAY, 12)), _punch(TimeEntryType.ENTRY, _at(MONDAY, 13))],
            planned_minutes=600,
            tolerance_minutes=10,
        )
        self.assertEqual(result.status, "INCOMPLETE")
        self.assertEqual((result.balance_minutes, result.overtime_minutes), (0, 0))

    def test_tolerance_boundary_is_ok(self) -> None:
        entries = [_punch(TimeEntryType.ENTRY, _at(MONDAY, 8)), _punch(TimeEntryType.EXIT, _at(MONDAY, 17, 50))]
        result = calculate_day_balance(MONDAY, entries, planned_minutes=600, tolerance_minutes=10)
        self.assertEqual(result.status, "OK")
        self.assertEqual(result.total_worked_minutes, 590)
        self.assertEqual(result.balance_minutes, -10)


class ListDailyBalancesTests(SqliteTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.employee = self.add_user(email="heitor.lima@example.com")

    def _shift(self, day: date, *spans: tuple[tuple[int, int], tuple[int, int]]) -> None:
        for start, end in spans:
            self.add_time_entry(user_id=self.employee.id, ts_utc=_at(day, *start), entry_type=TimeEntryType.ENTRY)
            self.add_time_entry(user_id=self.employee.id, ts_utc=_at(day, *end), entry_type=TimeEntryType.EXIT)

    def test_week_of_balances_newest_first(self) -> None:
        self._shift(MONDAY, ((8, 0), (18, 5)))
        self._shift(MONDAY + timedelta(days=1), ((8, 0), (12, 0)), ((13, 0), (19, 30)))
        self._shift(MONDAY + timedelta(days=2), ((9, 0), (17, 0)))
        self.add_time_entry(user_id=self.employee.id, ts_utc=_at(MONDAY + timedelta(days=3), 8))

        balances = list_daily_balances(self.db, user_id=self.employee.id, start_date=MONDAY, end_date=SUNDAY)

        self.assertEqual([item.reference_date for item in balances], [SUNDAY - timedelta(days=n) for n in range(7)])
        by_day = {item.reference_date: item for item in balances}
        self.assertEqual(by_day[MONDAY].status, "OK")
        self.assertEqual(by_day[MONDAY].balance_minutes, 5)

        tuesday = by_day[MONDAY + timedelta(days=1)]
        self.assertEqual((tuesday.status, tuesday.total_worked_minutes, tuesday.overtime_minutes), ("OVERTIME", 630, 30))

        wednesday = by_day[MONDAY + timedelta(days=2)]
        self.assertEqual((wednesday.status, wednesday.balance_minutes, wednesday.overtime_minutes), ("DEFICIT", -120, 0))

        self.assertEqual(by_day[MONDAY + timedelta(days=3)].status, "INCOMPLETE")

        friday = by_day[MONDAY + timedelta(days=4)]
        self.assertEqual((friday.status, friday.planned_minutes, friday.balance_minutes), ("ABSENT", 600, -600))

        self.assertEqual(by_day[SUNDAY].status, "OFF")
        self.assertEqual(by_day[SUNDAY].balance_minutes, 0)

    def test_accepted_vacation_day_is_excused(self) -> None:
        friday = MONDAY + timedelta(days=4)
        for status, target in ((RequestStatus.ACCEPTED, friday), (RequestStatus.REJECTED, MONDAY)):
            self.db.add(
                EmployeeRequest(
                    requester_id=self.employee.id,
                    type=RequestType.VACATION,
                    target_date=target,
                    status=status,
                )
            )
        self.db.commit()

        balances = list_daily_balances(self.db, user_id=self.employee.id, start_date=MONDAY, end_date=friday)
        by_day = {item.reference_date: item for item in balances}
        self.assertEqual(by_day[friday].status, "EXCUSED")
        self.assertEqual((by_day[friday].planned_minutes, by_day[friday].balance_minutes), (0, 0))
        self.assertEqual(by_day[MONDAY].status, "ABSENT")

    def test_invalid_ranges_and_unknown_user(self) -> None:
        cases = {
            "reversed": (SUNDAY, MONDAY),
            "too_long": (MONDAY, MONDAY + timedelta(days=MAX_RANGE_DAYS)),
        }
        for name, (start, end) in cases.items():
            with self.subTest(name):
                with self.assertRaises(ApiError) as ctx:
                    list_daily_balances(self.db, user_id=self.employee.id, start_date=start, end_date=end)
                self.assertEqual(ctx.exception.code, "INVALID_DATE_RANGE")
                self.assertEqual(ctx.exception.status_code, 422)

        with self.assertRaises(ApiError) as ctx:
            list_daily_balances(self.db, user_id=9999, start_date=MONDAY, end_date=SUNDAY)
        self.assertEqual(ctx.exception.code, "USER_NOT_FOUND")


class DailyBalanceEndpointTests(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.employee = self.add_user(email="iara.duarte@example.com", department=Department.IT)
        self.peer = self.add_user(email="jonas.pinto@example.com", department=Department.IT)
        self.it_manager = self.add_user(
            email="karen.alves@example.com",
            department=Department.IT,
            job_title=JobTitle.MANAGER,
        )
        self.act_as(self.employee.id)

    def test_owner_gets_requested_range(self) -> None:
        self.add_time_entry(user_id=self.employee.id, ts_utc=_at(MONDAY, 8), entry_type=TimeEntryType.ENTRY)
        self.add_time_entry(user_id=self.employee.id, ts_utc=_at(MONDAY, 18), entry_type=TimeEntryType.EXIT)

        response = self.client.get(
            f"/api/reports/balance/{self.employee.id}",
            params={"start_date": MONDAY.isoformat(), "end_date": MONDAY.isoformat()},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(),
            [
                {
                    "reference_date": "2026-03-02",
                    "total_worked_minutes": 600,
                    "planned_minutes": 600,
                    "balance_minutes": 0,
                    "overtime_minutes": 0,
                    "status": "OK",
                }
            ],
        )

    def test_default_range_is_thirty_days(self) -> None:
        self.act_as(self.it_manager.id)
        response = self.client.get(f"/api/reports/balance/{self.employee.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 30)
        self.assertEqual(response.json()[0]["reference_date"], datetime.now(timezone.utc).date().isoformat())

    def test_peer_is_forbidden_and_bad_range_rejected(self) -> None:
        self.act_as(self.peer.id)
        forbidden = self.client.get(f"/api/reports/balance/{self.employee.id}")
        self.assertEqual(forbidden.status_code, 403)
        self.assertEqual(forbidden.json()["error"]["code"], "FORBIDDEN")

        self.act_as(self.employee.id)
        reversed_range = self.client.get(
            f"/api/reports/balance/{self.employee.id}",
            params={"start_date": SUNDAY.isoformat(), "end_date": MONDAY.isoformat()},
        )
        self.assertEqual(reversed_range.status_code, 422)
        self.assertEqual(reversed_range.json()["error"]["code"], "INVALID_DATE_RANGE")


if __name__ == "__main__":
    unittest.main()
