"""Helpers that seed salon data for database-backed tests."""

import uuid
from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.database import (
    Appointment,
    AppointmentService,
    AppointmentStatus,
    Client,
    NotificationEvent,
    NotificationLog,
    NotificationSetting,
    Salon,
    Service,
    Staff,
)


async def create_salon(
    session: AsyncSession,
    name: str = "Studio Anna",
    timezone: Optional[str] = "UTC",
) -> Salon:
    salon = Salon(name=name, slug=f"salon-{uuid.uuid4().hex[:8]}", timezone=timezone)
    session.add(salon)
    await session.flush()
    return salon


async def create_client(
    session: AsyncSession,
    salon: Salon,
    name: str = "Jane Doe",
    phone: str = "+48500100200",
    email: Optional[str] = None,
) -> Client:
    client = Client(salon_id=salon.id, name=name, phone=phone, email=email)
    session.add(client)
    await session.flush()
    return client


async def create_staff(session: AsyncSession, salon: Salon, name: Optional[str] = "Kasia") -> Staff:
    staff = Staff(salon_id=salon.id, name=name)
    session.add(staff)
    await session.flush()
    return staff


async def create_appointment(
    session: AsyncSession,
    salon: Salon,
    client: Client,
    starts_at: datetime,
    duration: int = 60,
    status: AppointmentStatus = AppointmentStatus.SCHEDULED,
    staff: Optional[Staff] = None,
    services: Sequence[str] = ("Haircut",),
) -> Appointment:
    """Create an appointment; `starts_at` is naive wall-clock time in the salon's timezone."""
    appointment = Appointment(
        salon_id=salon.id,
        client_id=client.id,
        staff_id=staff.id if staff else None,
        date=starts_at.date(),
        time=starts_at.time(),
        duration=duration,
        status=status,
    )
    session.add(appointment)
    await session.flush()

    for name in services:
        service = Service(salon_id=salon.id, name=name, duration_minutes=duration)
        session.add(service)
        await session.flush()
        session.add(AppointmentService(appointment_id=appointment.id, service_id=service.id))
    await session.flush()
    return appointment


async def create_setting(
    session: AsyncSession,
    salon: Salon,
    event: NotificationEvent,
    sms: bool = True,
    email: bool = False,
    timing_minutes: Optional[int] = None,
) -> NotificationSetting:
    setting = NotificationSetting(
        salon_id=salon.id,
        event=event,
        sms_enabled=sms,
        email_enabled=email,
        timing_minutes=timing_minutes,
    )
    session.add(setting)
    await session.flush()
    return setting


async def load_appointment(session: AsyncSession, appointment_id: uuid.UUID) -> Appointment:
    """Load an appointment with everything the dispatcher reads."""
    result = await session.execute(
        select(Appointment)
        .where(Appointment.id == appointment_id)
        .options(
            selectinload(Appointment.client),
            selectinload(Appointment.staff),
            selectinload(Appointment.salon),
            selectinload(Appointment.appointment_services).selectinload(AppointmentService.service),
        )
    )
    return result.scalar_one()


async def fetch_logs(session: AsyncSession, appointment_id: Optional[uuid.UUID] = None) -> list[NotificationLog]:
    query = select(NotificationLog).order_by(NotificationLog.channel)
    if appointment_id is not None:
        query = query.where(NotificationLog.appointment_id == appointment_id)
    result = await session.execute(query)
    return list(result.scalars().all())


async def count_logs(session: AsyncSession) -> int:
    result = await session.execute(select(func.count()).select_from(NotificationLog))
    return result.scalar_one()
