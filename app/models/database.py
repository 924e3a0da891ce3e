"""
Database Models

SQLAlchemy ORM models for the salon booking data the reminder service reads
(salons, clients, staff, services, appointments, notification settings and
templates) and the notification log it appends to.
"""

import uuid
from datetime import date as date_type, datetime, time as time_type
from enum import Enum
from typing import Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Index, Integer, String, Text, Time,
    UniqueConstraint, Enum as SQLEnum, Uuid, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds a created_at timestamp column."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    SCHEDULED = "SCHEDULED"
    CONFIRMED = "CONFIRMED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


class NotificationEvent(str, Enum):
    """Events a salon can send notifications for."""
    BOOKING_CONFIRMATION = "BOOKING_CONFIRMATION"
    REMINDER_24H = "REMINDER_24H"
    REMINDER_2H = "REMINDER_2H"
    CANCELLATION = "CANCELLATION"
    FOLLOWUP = "FOLLOWUP"


class NotificationChannel(str, Enum):
    """Delivery channels."""
    SMS = "SMS"
    EMAIL = "EMAIL"


class DeliveryStatus(str, Enum):
    """How a logged notification was handled."""
    SENT = "SENT"
    SKIPPED = "SKIPPED"


class TokenType(str, Enum):
    """Appointment token purpose."""
    CANCEL = "CANCEL"


class Salon(Base, TimestampMixin):
    """
    Salon model (Tenant).

    Each salon owns its clients, staff, services, appointments and
    notification configuration.
    """

    __tablename__ = "salons"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    timezone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Relationships
    appointments: Mapped[List["Appointment"]] = relationship(
        "Appointment",
        back_populates="salon"
    )
    notification_settings: Mapped[List["NotificationSetting"]] = relationship(
        "NotificationSetting",
        back_populates="salon"
    )

    def __repr__(self) -> str:
        return f"<Salon(id={self.id}, name='{self.name}')>"


class Client(Base, TimestampMixin):
    """Salon client (the person who receives reminders)."""

    __tablename__ = "clients"
    __table_args__ = (
        Index("idx_client_salon", "salon_id"),
        Index("idx_client_phone", "salon_id", "phone"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str] = mapped_column(String(50), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Client(id={self.id}, name='{self.name}')>"


class Staff(Base, TimestampMixin):
    """Staff member an appointment may be assigned to."""

    __tablename__ = "staff"
    __table_args__ = (
        Index("idx_staff_salon", "salon_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<Staff(id={self.id}, name='{self.name}')>"


class Service(Base, TimestampMixin):
    """Bookable salon service."""

    __tablename__ = "services"
    __table_args__ = (
        Index("idx_service_salon", "salon_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, default=30)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}')>"


class Appointment(Base, TimestampMixin):
    """
    Appointment model.

    `date` and `time` are wall-clock values in the salon's timezone;
    `duration` is in minutes.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_salon_date", "salon_id", "date"),
        Index("idx_appointment_status", "salon_id", "status"),
        Index("idx_appointment_client", "client_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    client_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("clients.id", ondelete="CASCADE"),
        nullable=False
    )
    staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True
    )
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    time: Mapped[time_type] = mapped_column(Time, nullable=False)
    duration: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus),
        default=AppointmentStatus.SCHEDULED
    )
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    salon: Mapped["Salon"] = relationship("Salon", back_populates="appointments")
    client: Mapped["Client"] = relationship("Client")
    staff: Mapped[Optional["Staff"]] = relationship("Staff")
    appointment_services: Mapped[List["AppointmentService"]] = relationship(
        "AppointmentService",
        back_populates="appointment",
        cascade="all, delete-orphan",
    )

    @property
    def service_names(self) -> list[str]:
        """Names of the booked services, in booking order."""
        return [item.service.name for item in self.appointment_services]

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, salon_id={self.salon_id}, "
            f"date={self.date}, time={self.time}, status={self.status.value})>"
        )


class AppointmentService(Base):
    """Link between an appointment and a booked service."""

    __tablename__ = "appointment_services"

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False
    )
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False
    )

    appointment: Mapped["Appointment"] = relationship(
        "Appointment",
        back_populates="appointment_services"
    )
    service: Mapped["Service"] = relationship("Service")


class AppointmentToken(Base, TimestampMixin):
    """Single-use token embedded in self-service links (e.g. cancellation)."""

    __tablename__ = "appointment_tokens"
    __table_args__ = (
        Index("idx_token_appointment", "appointment_id", "type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False
    )
    token: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    type: Mapped[TokenType] = mapped_column(SQLEnum(TokenType), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)


class NotificationSetting(Base, TimestampMixin):
    """
    Per-salon, per-event notification configuration.

    `timing_minutes` overrides the default reminder offset when set.
    """

    __tablename__ = "notification_settings"
    __table_args__ = (
        UniqueConstraint("salon_id", "event", name="uq_notification_setting_salon_event"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    event: Mapped[NotificationEvent] = mapped_column(
        SQLEnum(NotificationEvent),
        nullable=False
    )
    sms_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    email_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    timing_minutes: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    salon: Mapped["Salon"] = relationship("Salon", back_populates="notification_settings")

    def __repr__(self) -> str:
        return (
            f"<NotificationSetting(salon_id={self.salon_id}, event={self.event.value}, "
            f"sms={self.sms_enabled}, email={self.email_enabled}, "
            f"timing={self.timing_minutes})>"
        )


class NotificationTemplate(Base, TimestampMixin):
    """Salon-defined message template for an event and channel."""

    __tablename__ = "notification_templates"
    __table_args__ = (
        UniqueConstraint(
            "salon_id", "event", "channel",
            name="uq_notification_template_salon_event_channel",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    salon_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("salons.id", ondelete="CASCADE"),
        nullable=False
    )
    event: Mapped[NotificationEvent] = mapped_column(
        SQLEnum(NotificationEvent),
        nullable=False
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        SQLEnum(NotificationChannel),
        nullable=False
    )
    subject: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


class NotificationLog(Base, TimestampMixin):
    """
    Notification Log model.

    Append-only record of (appointment, event, channel) triples that were
    handled. At most one row exists per triple.
    """

    __tablename__ = "notification_logs"
    __table_args__ = (
        UniqueConstraint(
            "appointment_id", "event", "channel",
            name="uq_notification_log_appointment_event_channel",
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    appointment_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("appointments.id", ondelete="CASCADE"),
        nullable=False
    )
    event: Mapped[NotificationEvent] = mapped_column(
        SQLEnum(NotificationEvent),
        nullable=False
    )
    channel: Mapped[NotificationChannel] = mapped_column(
        SQLEnum(NotificationChannel),
        nullable=False
    )
    status: Mapped[DeliveryStatus] = mapped_column(
        SQLEnum(DeliveryStatus),
        default=DeliveryStatus.SENT,
        nullable=False
    )
    detail: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<NotificationLog(appointment_id={self.appointment_id}, "
            f"event={self.event.value}, channel={self.channel.value}, "
            f"status={self.status.value})>"
        )
