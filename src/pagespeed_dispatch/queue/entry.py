"""
Запись очереди с одноразовым handle подтверждения.

QueueEntry: единственный владелец delivery-handle (entry_id в consumer group).
Подтверждение является capability: ровно одно из ack / nack(requeue=True) /
nack(requeue=False); повторный вызов -> AckAlreadyResolvedError.
"""

from __future__ import annotations

from pagespeed_dispatch.common.errors import AckAlreadyResolvedError
from pagespeed_dispatch.domain.enums import Resolution

from .retry import requeue_with_backoff
from .streams import ack_task, dead_letter
from .tasks import DispatchRequest


class QueueEntry:
    def __init__(
        self,
        *,
        request: DispatchRequest,
        stream: str,
        group: str,
        entry_id: str,
        fields: dict[str, str],
        attempts: int = 0,
        reclaimed: bool = False,
    ) -> None:
        self.request = request
        self.stream = stream
        self.group = group
        self.entry_id = entry_id
        self.attempts = attempts
        self.reclaimed = reclaimed
        self._fields = dict(fields)
        self._resolution: Resolution | None = None

    @property
    def subject(self) -> str:
        return self.request.subject

    @property
    def requester_id(self) -> int:
        return self.request.requester_id

    @property
    def resolution(self) -> Resolution | None:
        return self._resolution

    @property
    def resolved(self) -> bool:
        return self._resolution is not None

    def _consume(self, resolution: Resolution) -> None:
        # handle гасится ДО сетевого вызова: если Redis упадёт посреди ack,
        # запись останется pending и будет переподобрана через XAUTOCLAIM
        if self._resolution is not None:
            raise AckAlreadyResolvedError(
                details={
                    "entry_id": self.entry_id,
                    "resolved_as": self._resolution.value,
                    "attempted": resolution.value,
                }
            )
        self._resolution = resolution

    def ack(self) -> None:
        self._consume(Resolution.ack)
        ack_task(stream=self.stream, group=self.group, entry_id=self.entry_id)

    def nack(self, *, requeue: bool, reason: str = "") -> bool:
        """
        requeue=True  -> запись снова видна воркерам (или DLQ при исчерпании попыток)
        requeue=False -> запись уходит в DLQ

        Возвращает True, если запись поставлена обратно в очередь.
        """
        if not requeue:
            self._consume(Resolution.drop)
            dead_letter(
                stream=self.stream,
                group=self.group,
                entry_id=self.entry_id,
                fields=self._fields,
                reason=reason or "fatal",
            )
            return False

        self._consume(Resolution.requeue)
        return requeue_with_backoff(
            stream=self.stream,
            group=self.group,
            entry_id=self.entry_id,
            fields=self._fields,
            reason=reason,
        )
