from .schemas import Booking, BookingStatus, Role

S = BookingStatus

TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    S.PENDING: frozenset({S.CONFIRMED, S.CANCELLED, S.NO_SHOW}),
    S.CONFIRMED: frozenset({S.IN_PROGRESS, S.CANCELLED, S.NO_SHOW}),
    S.IN_PROGRESS: frozenset({S.COMPLETED, S.NO_SHOW}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
    S.NO_SHOW: frozenset(),
}

TERMINAL = frozenset(s for s, nxt in TRANSITIONS.items() if not nxt)
CUSTOMER_CANCELLABLE = frozenset({S.PENDING, S.CONFIRMED})

# display order for provider status menus
_ORDER = [S.PENDING, S.CONFIRMED, S.IN_PROGRESS, S.COMPLETED, S.CANCELLED, S.NO_SHOW]

CANCEL = "cancel"


def allowed_transitions(status: BookingStatus) -> list[BookingStatus]:
    nxt = TRANSITIONS[BookingStatus(status)]
    return [s for s in _ORDER if s in nxt]


def can_transition(current: BookingStatus, new: BookingStatus) -> bool:
    return BookingStatus(new) in TRANSITIONS[BookingStatus(current)]


def is_terminal(status: BookingStatus) -> bool:
    return BookingStatus(status) in TERMINAL


def customer_can_cancel(status: BookingStatus) -> bool:
    return BookingStatus(status) in CUSTOMER_CANCELLABLE


def provider_can_change(status: BookingStatus) -> bool:
    return not is_terminal(status)


def status_action(status: BookingStatus) -> str:
    return f"set:{BookingStatus(status).value}"


def available_actions(booking: Booking, role: Role) -> list[str]:
    """
    Actions a UI should offer for `booking`. Anything not listed here is
    hidden; the server stays the authority on what actually succeeds.
    """
    role = Role(role)
    actions = []
    if role == Role.CUSTOMER:
        if customer_can_cancel(booking.status):
            actions.append(CANCEL)
        return actions

    if provider_can_change(booking.status):
        actions.extend(status_action(s) for s in allowed_transitions(booking.status) if s != S.CANCELLED)
        if customer_can_cancel(booking.status):
            actions.append(CANCEL)
    return actions
