"""
Tests de informes de ventas y asistencia.
"""
from datetime import date
from decimal import Decimal

from conftest import LAUNCH_DATE, VENUE, seed_event
from shared.ledger import paths
from shared.ledger.models import Holder
from services.admin.services.stats_service import StatsService
from services.ticket_issuance.services.allocator_service import TicketAllocator
from services.ticket_validation.services.redemption_gate import RedemptionGate


async def _issue(store, event_name="Launch", event_date=LAUNCH_DATE, price=None, ticket_type="General", holder="Ana"):
    return await TicketAllocator(store).allocate(
        venue_id=VENUE,
        event_date=event_date,
        event_name=event_name,
        ticket_type=ticket_type,
        holder=Holder(name=holder),
        price=price,
    )


class TestAggregate:

    async def test_counts_and_revenue(self, store):
        await seed_event(store)
        await _issue(store)                      # 15
        await _issue(store, ticket_type="VIP")   # 40
        await _issue(store, price="abc")         # ilegible -> 0

        report = await StatsService(store).aggregate(VENUE, ["Launch"])
        assert report.tickets_sold == {"Launch": 3}
        assert report.revenue == {"Launch": Decimal("55")}

    async def test_text_and_numeric_prices(self, memory_store):
        await seed_event(memory_store)
        await _issue(memory_store, price="12,50")
        await _issue(memory_store, price=10)
        await _issue(memory_store, price=2.5)

        report = await StatsService(memory_store).aggregate(VENUE, ["Launch"])
        assert report.revenue["Launch"] == Decimal("25.00")

    async def test_same_name_on_several_dates_is_summed(self, memory_store):
        other_day = date(2025, 7, 27)
        await seed_event(memory_store)
        await seed_event(memory_store, event_date=other_day)
        await _issue(memory_store)
        await _issue(memory_store, event_date=other_day)
        await _issue(memory_store, event_date=other_day)

        report = await StatsService(memory_store).aggregate(VENUE, ["Launch"])
        assert report.tickets_sold["Launch"] == 3
        assert report.revenue["Launch"] == Decimal("45")

    async def test_sold_comes_from_counter(self, memory_store):
        await seed_event(memory_store)
        await _issue(memory_store)
        # Número quemado: el contador avanzó sin entrada escrita
        await memory_store.increment(paths.counter_path(VENUE, LAUNCH_DATE, "Launch"))

        report = await StatsService(memory_store).aggregate(VENUE, ["Launch"])
        assert report.tickets_sold["Launch"] == 2
        assert report.revenue["Launch"] == Decimal("15")

    async def test_unknown_event(self, memory_store):
        report = await StatsService(memory_store).aggregate(VENUE, ["Nope"])
        assert report.tickets_sold == {"Nope": 0}
        assert report.revenue == {"Nope": Decimal("0")}

    async def test_is_read_only(self, memory_store):
        await seed_event(memory_store)
        await _issue(memory_store)
        before = await memory_store.get(paths.venue_events_path(VENUE))
        service = StatsService(memory_store)
        await service.aggregate(VENUE, ["Launch"])
        await service.attendance_report(VENUE, LAUNCH_DATE)
        assert await memory_store.get(paths.venue_events_path(VENUE)) == before


class TestBreakdownAndAttendance:

    async def test_ticket_type_breakdown(self, memory_store):
        await seed_event(memory_store)
        await _issue(memory_store)
        await _issue(memory_store)
        await _issue(memory_store, ticket_type="VIP")

        stats = await StatsService(memory_store).ticket_type_breakdown(VENUE, "Launch")
        assert [(s.ticket_type, s.tickets, s.revenue) for s in stats] == [
            ("General", 2, Decimal("30")),
            ("VIP", 1, Decimal("40")),
        ]

    async def test_attendance_report(self, memory_store):
        await seed_event(memory_store)
        first = await _issue(memory_store, holder="Ana")
        await _issue(memory_store, holder="Luis")
        await RedemptionGate(memory_store, today=lambda: LAUNCH_DATE).redeem(VENUE, first.code)

        report = await StatsService(memory_store).attendance_report(VENUE, LAUNCH_DATE)
        assert [r.holder_name for r in report.rows] == ["Ana", "Luis"]
        assert report.total_tickets == 2
        assert report.validated_tickets == 1
        assert report.validated_percentage == 50
        assert report.revenue_total == Decimal("30")
        assert report.revenue_validated == Decimal("15")
        assert report.revenue_not_validated == Decimal("15")
        assert report.net_revenue == Decimal("24.79")

    async def test_attendance_percentage_is_truncated(self, memory_store):
        await seed_event(memory_store)
        tickets = [await _issue(memory_store, holder=f"Guest {i}") for i in range(3)]
        await RedemptionGate(memory_store, today=lambda: LAUNCH_DATE).redeem(VENUE, tickets[0].code)

        report = await StatsService(memory_store).attendance_report(VENUE, LAUNCH_DATE)
        assert report.validated_percentage == 33

    async def test_empty_day(self, memory_store):
        report = await StatsService(memory_store).attendance_report(VENUE, LAUNCH_DATE)
        assert report.rows == []
        assert report.validated_percentage == 0
        assert report.net_revenue == Decimal("0.00")
