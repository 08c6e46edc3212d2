import pytest

from chat_core.domain.exceptions import AdjacentRoleViolation
from chat_core.domain.listeners import ListenerRegistry
from chat_core.domain.rules import Admission, decide_admission


def test_system_admission():
    assert decide_admission("system", None, False, True) is Admission.INSERT_SYSTEM
    assert decide_admission("system", "user", True, True) is Admission.REPLACE_SYSTEM
    assert decide_admission("system", "user", True, False) is Admission.DROP_SYSTEM
    assert decide_admission("system", None, False, False) is Admission.NOOP


def test_user_and_assistant_alternate():
    assert decide_admission("user", None, False, True) is Admission.APPEND
    assert decide_admission("user", "system", True, True) is Admission.APPEND
    assert decide_admission("assistant", "user", True, True) is Admission.APPEND
    assert decide_admission("assistant", None, False, False) is Admission.APPEND


@pytest.mark.parametrize("role", ["user", "assistant"])
def test_same_role_is_rejected(role):
    with pytest.raises(AdjacentRoleViolation) as exc:
        decide_admission(role, role, False, True)
    assert exc.value.code == "ADJACENT_ROLE_VIOLATION"


def test_listener_registry_order_and_disposal():
    registry = ListenerRegistry()
    calls = []

    def first(v):
        calls.append(("first", v))

    def once(v):
        calls.append(("once", v))
        dispose_once()

    registry.add(first)
    dispose_once = registry.add(once)
    registry.add(lambda v: calls.append(("last", v)))

    registry.notify(1)
    registry.notify(2)
    registry.remove(first)
    registry.notify(3)

    assert calls == [
        ("first", 1), ("once", 1), ("last", 1),
        ("first", 2), ("last", 2),
        ("last", 3),
    ]
    assert len(registry) == 1
