from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from dbus_fast import Message, Variant

from niritaskbar.errors import ProtocolError

NOTIFICATIONS_INTERFACE = "org.freedesktop.Notifications"
NOTIFY_MEMBER = "Notify"
NOTIFY_SIGNATURE = "susssasa{sv}i"


def _unwrap(value: Any) -> Any:
    return value.value if isinstance(value, Variant) else value


def _optional_str(value: Any) -> Optional[str]:
    # Empty strings mean "not provided" on the wire.
    return value or None


@dataclass(frozen=True)
class Action:
    id: str
    localised: str


@dataclass(frozen=True)
class Hints:
    """The well-known notification hints; anything else lands in `extra`."""

    action_icons: Optional[bool] = None
    category: Optional[str] = None
    desktop_entry: Optional[str] = None
    resident: Optional[bool] = None
    sound_file: Optional[str] = None
    sound_name: Optional[str] = None
    suppress_sound: Optional[bool] = None
    transient: Optional[bool] = None
    sender_pid: Optional[int] = None
    urgency: Optional[int] = None
    x: Optional[int] = None
    y: Optional[int] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, hints: Dict[str, Any]) -> "Hints":
        known = {}
        extra = {}
        for key, value in hints.items():
            name = key.replace("-", "_")
            if name in _HINT_FIELDS:
                known[name] = _unwrap(value)
            else:
                extra[key] = _unwrap(value)
        return cls(extra=extra, **known)


_HINT_FIELDS = frozenset(
    name for name in Hints.__dataclass_fields__ if name != "extra"
)


def _pair_actions(actions: Sequence[str]) -> Tuple[Action, ...]:
    # Actions arrive flattened as [id, label, id, label, ...]; an odd trailing
    # id without a label is dropped.
    return tuple(
        Action(id=actions[i], localised=actions[i + 1])
        for i in range(0, len(actions) - 1, 2)
    )


@dataclass(frozen=True)
class Notification:
    """A freedesktop notification as captured from a `Notify` call."""

    summary: str
    app_name: Optional[str] = None
    replaces_id: Optional[int] = None
    app_icon: Optional[str] = None
    body: Optional[str] = None
    actions: Tuple[Action, ...] = ()
    hints: Hints = field(default_factory=Hints)
    expire_timeout: int = -1

    @classmethod
    def from_body(cls, body: List[Any]) -> "Notification":
        """
        Builds a notification from the `Notify` method-call arguments.

        Raises:
            ProtocolError: The body does not have the `Notify` shape.
        """
        try:
            (
                app_name,
                replaces_id,
                app_icon,
                summary,
                text,
                actions,
                hints,
                expire_timeout,
            ) = body
        except (TypeError, ValueError) as e:
            raise ProtocolError(f"malformed Notify call: {e}") from e
        return cls(
            summary=summary,
            app_name=_optional_str(app_name),
            replaces_id=replaces_id or None,
            app_icon=_optional_str(app_icon),
            body=_optional_str(text),
            actions=_pair_actions(actions or []),
            hints=Hints.from_dict(hints or {}),
            expire_timeout=expire_timeout,
        )

    @staticmethod
    def is_notify_call(message: Message) -> bool:
        return (
            message.interface == NOTIFICATIONS_INTERFACE
            and message.member == NOTIFY_MEMBER
            and message.signature == NOTIFY_SIGNATURE
        )

    @classmethod
    def from_message(cls, message: Message) -> "Notification":
        if not cls.is_notify_call(message):
            raise ProtocolError(
                f"not a Notify call: {message.interface}.{message.member}"
            )
        return cls.from_body(message.body)


@dataclass(frozen=True)
class EnrichedNotification:
    """
    A notification plus the sender's pid as resolved from its bus connection.
    """

    notification: Notification
    resolved_pid: Optional[int] = None

    @property
    def pid(self) -> Optional[int]:
        """The resolved pid, falling back to the sender-pid hint."""
        if self.resolved_pid is not None:
            return self.resolved_pid
        return self.notification.hints.sender_pid

    @property
    def desktop_entry(self) -> Optional[str]:
        return self.notification.hints.desktop_entry
