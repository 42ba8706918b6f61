"""
Tests de la sesión de escaneo: lectura -> antirrebote -> gate -> pantalla.
"""
import asyncio

from conftest import LAUNCH_DATE, VENUE, seed_event
from shared.ledger.models import Holder
from shared.utils.scan_codec import encode
from services.ticket_issuance.services.allocator_service import TicketAllocator
from services.ticket_validation.services.redemption_gate import RedemptionGate, RedemptionStatus
from services.ticket_validation.services.scan_debouncer import ScanDebouncer
from services.ticket_validation.services.scan_session import OperatorDisplay, QueueScanSource, ScanSession


class RecordingDisplay(OperatorDisplay):
    def __init__(self):
        self.events = []

    async def show_allow(self, result, details=None):
        self.events.append(("allow", result.status, details))

    async def show_deny(self, result):
        self.events.append(("deny", result.status, None))

    async def show_error(self, result):
        self.events.append(("error", result.status, None))

    async def clear(self):
        self.events.append(("clear", None, None))


class CountingGate(RedemptionGate):
    def __init__(self, store, **kwargs):
        super().__init__(store, today=lambda: LAUNCH_DATE, retry_delay=0, **kwargs)
        self.calls = []

    async def redeem(self, venue_id, decoded_code, current_date=None):
        self.calls.append(decoded_code)
        return await super().redeem(venue_id, decoded_code, current_date)


class BlockingGate(CountingGate):
    def __init__(self, store):
        super().__init__(store)
        self.release = asyncio.Event()

    async def redeem(self, venue_id, decoded_code, current_date=None):
        self.calls.append(decoded_code)
        await self.release.wait()
        return await RedemptionGate.redeem(self, venue_id, decoded_code, current_date)


class RaisingGate(CountingGate):
    async def redeem(self, venue_id, decoded_code, current_date=None):
        self.calls.append(decoded_code)
        raise RuntimeError("fallo inesperado")


async def _issue(store, holder="Ana"):
    return await TicketAllocator(store).allocate(
        venue_id=VENUE,
        event_date=LAUNCH_DATE,
        event_name="Launch",
        ticket_type="General",
        holder=Holder(name=holder),
    )


def _session(store, clock, gate=None, display=None, **kwargs):
    debouncer = ScanDebouncer(quiet_interval=3.0, display_duration=2.0, clock=clock)
    return ScanSession(
        venue_id=VENUE,
        gate=gate or CountingGate(store),
        display=display or RecordingDisplay(),
        debouncer=debouncer,
        **kwargs,
    )


class TestScanSession:

    async def test_repeated_frames_invoke_gate_once(self, memory_store, clock):
        await seed_event(memory_store)
        ticket = await _issue(memory_store)
        session = _session(memory_store, clock)
        payload = encode(ticket)

        first = await session.submit(payload)
        assert first.status == RedemptionStatus.ALLOW
        clock.advance(0.5)
        assert await session.submit(payload) is None
        clock.advance(2.0)
        assert await session.submit(payload) is None
        assert session.gate.calls == [ticket.code]

        clock.advance(1.0)
        again = await session.submit(payload)
        assert again.status == RedemptionStatus.ALREADY_USED
        assert len(session.gate.calls) == 2
        await session.close()

    async def test_display_outputs(self, memory_store, clock):
        await seed_event(memory_store)
        ticket = await _issue(memory_store)
        display = RecordingDisplay()
        session = _session(memory_store, clock, display=display)

        await session.submit(encode(ticket))
        clock.advance(3.5)
        await session.submit(encode(ticket))
        assert [e[0] for e in display.events] == ["allow", "deny"]
        assert display.events[0][2] is None
        assert display.events[1][1] == RedemptionStatus.ALREADY_USED
        await session.close()

    async def test_details_only_when_opted_in(self, memory_store, clock):
        await seed_event(memory_store)
        ticket = await _issue(memory_store, holder="Marta")
        display = RecordingDisplay()
        session = _session(memory_store, clock, display=display, show_details=True)

        await session.submit(encode(ticket))
        details = display.events[0][2]
        assert details.holder_name == "Marta"
        assert details.ticket_type == "General"
        await session.close()

    async def test_garbage_payload_denied_without_lookup(self, memory_store, clock):
        display = RecordingDisplay()
        session = _session(memory_store, clock, display=display)

        result = await session.submit("https://example.com/not-a-ticket")
        assert result.status == RedemptionStatus.INVALID
        assert session.gate.calls == []
        assert display.events[0][0] == "deny"
        await session.close()

    async def test_lookup_error_is_shown_as_error(self, clock):
        from test_redemption_gate import FlakyStore

        store = FlakyStore(failures=100)
        display = RecordingDisplay()
        session = _session(store, clock, display=display)

        result = await session.submit(encode("TICKET-1-ABCDEFABCDEF"))
        assert result.status == RedemptionStatus.LOOKUP_ERROR
        assert display.events[0][0] == "error"
        await session.close()

    async def test_unexpected_gate_error_is_shown_and_key_released(self, memory_store, clock):
        display = RecordingDisplay()
        gate = RaisingGate(memory_store)
        session = _session(memory_store, clock, gate=gate, display=display)
        payload = encode("TICKET-1-ABCDEFABCDEF")

        result = await session.submit(payload)
        assert result.status == RedemptionStatus.LOOKUP_ERROR
        assert display.events[0][0] == "error"
        assert session.debouncer.in_flight == set()

        clock.advance(3.5)
        assert (await session.submit(payload)).status == RedemptionStatus.LOOKUP_ERROR
        assert len(gate.calls) == 2
        await session.close()

    async def test_clear_after_display_window(self, memory_store, clock):
        display = RecordingDisplay()
        debouncer = ScanDebouncer(quiet_interval=3.0, display_duration=0.01, clock=clock)
        session = ScanSession(VENUE, CountingGate(memory_store), display, debouncer=debouncer)

        await session.submit("garbage")
        await asyncio.sleep(0.05)
        assert [e[0] for e in display.events] == ["deny", "clear"]
        await session.close()

    async def test_close_cancels_in_flight_redemption(self, memory_store, clock):
        await seed_event(memory_store)
        ticket = await _issue(memory_store)
        gate = BlockingGate(memory_store)
        display = RecordingDisplay()
        session = _session(memory_store, clock, gate=gate, display=display)

        task = await session.on_payload(encode(ticket))
        await asyncio.sleep(0)
        assert gate.calls == [ticket.code]

        await session.close()
        assert task.cancelled()
        assert display.events == []
        assert session.debouncer.in_flight == set()
        assert await session.on_payload(encode(ticket)) is None

    async def test_run_consumes_source_until_stopped(self, memory_store, clock):
        await seed_event(memory_store)
        first = await _issue(memory_store, holder="Ana")
        second = await _issue(memory_store, holder="Luis")
        display = RecordingDisplay()
        session = _session(memory_store, clock, display=display)
        source = QueueScanSource()

        runner = asyncio.create_task(session.run(source))
        await source.push(encode(first))
        await source.push(encode(first))
        await asyncio.sleep(0.05)
        clock.advance(2.5)
        await source.push(encode(second))
        await asyncio.sleep(0.05)
        await source.stop()
        await asyncio.wait_for(runner, timeout=1)

        assert session.gate.calls == [first.code, second.code]
        assert [e[0] for e in display.events] == ["allow", "allow"]
        await session.close()
