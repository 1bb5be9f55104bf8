# core/notifications/models.py
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class Notification:
    id: str
    read: bool
    creation: Optional[str] = None
    subject: str = ''
    from_user: str = ''
    document_ref: Optional[str] = None
    document_link: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        """
        Builds a notification from a backend record.

        The backend names the id 'name' and sends read as 0/1.
        """
        notification_id = data.get('id', data.get('name'))
        if notification_id is None:
            raise ValueError(f"Notification without id: {data!r}")

        return cls(
            id=str(notification_id),
            read=bool(int(data.get('read') or 0)),
            creation=data.get('creation'),
            subject=data.get('subject') or '',
            from_user=data.get('from_user_full_name') or data.get('from_user') or '',
            document_ref=data.get('document_name') or data.get('document_ref'),
            document_link=data.get('document_link') or data.get('link'),
        )

    def as_read(self) -> 'Notification':
        return self if self.read else replace(self, read=True)
