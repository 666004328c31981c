"""
test_events.py - Unit tests for the bounded pool event log
"""

from lendpool import EventLog, PoolEvent


def _event(name="Deposited", amount=1):
    return PoolEvent(name=name, pool="POOL", actor="alice", amount=amount)


class TestEventLog:

    def test_add_and_iterate(self):
        log = EventLog()
        log.add(_event())
        log.add(_event("SharesMinted"))
        assert [e.name for e in log] == ["Deposited", "SharesMinted"]
        assert len(log) == 2

    def test_bounded(self):
        log = EventLog(maxlen=3)
        log.extend([_event(amount=i) for i in range(5)])
        assert [e.amount for e in log] == [2, 3, 4]

    def test_tail(self):
        log = EventLog()
        log.extend([_event(amount=i) for i in range(5)])
        assert [e.amount for e in log.tail(2)] == [3, 4]
        assert len(log.tail(10)) == 5
        assert log.tail(0) == []

    def test_named(self):
        log = EventLog()
        log.extend([_event(), _event("Withdrawal"), _event()])
        assert len(log.named("Deposited")) == 2

    def test_repr_includes_details(self):
        event = PoolEvent(name="Borrowed", pool="POOL", actor="dave", amount=5, details={"router": "r"})
        assert "router" in repr(event)
