"""
Admin back office: dashboard statistics, pet exports (CSV / PDF), scheduled
export jobs, banned IPs and platform settings.
"""
import csv
import io
import os
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loguru import logger
from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle

import accounts
import settings
import store
import validators
from constants import AnimalType, PetStatus, TicketStatus
from errors import NotFoundError, ValidationError
from schemas import BannedIp, UserAccount, now_iso

DATE_RANGES = ["7d", "30d", "1y", "all"]
MONTH_LABELS = ["ene", "feb", "mar", "abr", "may", "jun", "jul", "ago", "sep", "oct", "nov", "dic"]

EXPORT_COLUMNS = [
    "pet_id", "status", "name", "animal_type", "breed", "color", "size", "location",
    "date", "owner_email", "contact", "created_at", "expires_at",
]

# Scheduler control
_scheduler_thread = None
_scheduler_stop_event = threading.Event()


# --- Dashboard ---
def _range_start(date_range: str, now: datetime) -> Optional[datetime]:
    if date_range == "7d":
        return now - timedelta(days=7)
    if date_range == "30d":
        return now - timedelta(days=30)
    if date_range == "1y":
        return now - timedelta(days=365)
    return None


def _parse(ts: str) -> datetime:
    d = datetime.fromisoformat(ts)
    return d if d.tzinfo else d.replace(tzinfo=timezone.utc)


def admin_stats(date_range: str = "all", now: Optional[datetime] = None) -> Dict[str, Any]:
    """Totals, a pets-created chart and status/type distributions.

    7d and 30d ranges chart one bucket per day; 1y and all chart the last
    twelve calendar months. Buckets run oldest to newest.
    """
    if date_range not in DATE_RANGES:
        raise ValidationError(f"Rango inválido: {date_range}")
    now = now or datetime.now(timezone.utc)
    start = _range_start(date_range, now)
    recent = [p for p in store.pets if start is None or _parse(p.created_at) >= start]

    buckets: Dict[str, int] = {}
    labels: Dict[str, str] = {}
    if date_range in ("1y", "all"):
        year, month = now.year, now.month
        for _ in range(12):
            key = f"{year:04d}-{month:02d}"
            buckets[key] = 0
            labels[key] = f"{MONTH_LABELS[month - 1]} {str(year)[2:]}"
            month -= 1
            if month == 0:
                year, month = year - 1, 12
        for p in recent:
            created = _parse(p.created_at)
            key = f"{created.year:04d}-{created.month:02d}"
            if key in buckets:
                buckets[key] += 1
    else:
        days = 7 if date_range == "7d" else 30
        for i in range(days):
            d = (now - timedelta(days=i)).date()
            buckets[d.isoformat()] = 0
            labels[d.isoformat()] = f"{d.day:02d} {MONTH_LABELS[d.month - 1]}"
        for p in recent:
            key = _parse(p.created_at).date().isoformat()
            if key in buckets:
                buckets[key] += 1

    chart = [{"key": k, "label": labels[k], "value": v} for k, v in reversed(list(buckets.items()))]

    return {
        "totalPets": len(store.pets),
        "totalUsers": len(store.users),
        "totalReports": len(store.reports),
        "pendingTickets": len([t for t in store.support_tickets if t.status == TicketStatus.PENDING]),
        "totalCampaigns": len(store.campaigns),
        "chartData": chart,
        "petsByStatus": {
            "lost": len([p for p in store.pets if p.status == PetStatus.PERDIDO]),
            "found": len([p for p in store.pets if p.status == PetStatus.ENCONTRADO]),
            "sighted": len([p for p in store.pets if p.status == PetStatus.AVISTADO]),
        },
        "petsByType": {
            "dogs": len([p for p in store.pets if p.animal_type == AnimalType.PERRO]),
            "cats": len([p for p in store.pets if p.animal_type == AnimalType.GATO]),
            "other": len([p for p in store.pets if p.animal_type == AnimalType.OTRO]),
        },
    }


# --- Exports ---
def _export_rows() -> List[List[str]]:
    rows = []
    for p in sorted(store.pets, key=lambda p: p.created_at, reverse=True):
        owner = store.find_user(p.user_id)
        rows.append([
            str(p.id),
            p.status,
            p.name or "",
            p.animal_type,
            p.breed or "",
            p.color or "",
            p.size or "",
            p.location or "",
            p.date or "",
            owner.email if owner else "",
            p.contact or "",
            p.created_at,
            p.expires_at or "",
        ])
    return rows


def export_pets_csv() -> bytes:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    writer.writerows(_export_rows())
    return output.getvalue().encode("utf-8")


def export_pets_pdf() -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(buffer, pagesize=landscape(letter))
    styles = getSampleStyleSheet()
    flowables = [Paragraph("Mas Patas - Reporte de mascotas", styles["Title"]), Spacer(1, 12)]

    data = [["ID", "Estado", "Nombre", "Tipo", "Raza", "Color", "Ubicación", "Publicado"]]
    for row in _export_rows():
        data.append([row[0][:8], row[1], row[2], row[3], row[4], row[5], row[7][:40], row[11][:10]])

    table = Table(data, repeatRows=1)
    table.setStyle(TableStyle([
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#b22222")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("GRID", (0, 0), (-1, -1), 0.5, colors.grey),
        ("ALIGN", (0, 0), (-1, -1), "LEFT"),
    ]))
    flowables.append(table)
    doc.build(flowables)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


def generate_exports(created_by=None) -> dict:
    """Write CSV and PDF exports into EXPORT_DIR and record their metadata."""
    os.makedirs(settings.EXPORT_DIR, exist_ok=True)
    ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    csv_path = os.path.abspath(os.path.join(settings.EXPORT_DIR, f"pets_export_{ts}.csv"))
    pdf_path = os.path.abspath(os.path.join(settings.EXPORT_DIR, f"pets_export_{ts}.pdf"))

    with open(csv_path, "wb") as f:
        f.write(export_pets_csv())
    with open(pdf_path, "wb") as f:
        f.write(export_pets_pdf())

    meta = {
        "export_id": str(uuid4()),
        "timestamp": now_iso(),
        "csv": csv_path,
        "pdf": pdf_path,
        "created_by": str(created_by) if created_by else None,
    }
    store.exports.append(meta)
    store.audit(f"Export generated: {meta['export_id']}")
    store.save_state()
    return meta


def find_export(export_id: str) -> dict:
    found = next((e for e in store.exports if e.get("export_id") == export_id), None)
    if not found:
        raise NotFoundError("Exportación no encontrada.")
    return found


def export_path(export_id: str, filetype: str) -> str:
    if filetype not in ("csv", "pdf"):
        raise ValidationError("Formato de exportación inválido.")
    path = find_export(export_id).get(filetype)
    if not path or not os.path.exists(path):
        raise NotFoundError("El archivo de exportación ya no existe.")
    return path


def schedule_export(created_by, frequency_minutes: int) -> dict:
    if frequency_minutes < 0:
        raise ValidationError("La frecuencia debe ser mayor o igual a 0 minutos.")
    job = {
        "job_id": str(uuid4()),
        "frequency_minutes": int(frequency_minutes),
        "created_by": str(created_by) if created_by else None,
        "last_run": None,
    }
    store.scheduled_exports.append(job)
    store.audit(f"Scheduled export job {job['job_id']} every {frequency_minutes} min")
    store.save_state()
    return job


def unschedule_export(job_id: str):
    store.scheduled_exports[:] = [j for j in store.scheduled_exports if j.get("job_id") != job_id]
    store.audit(f"Scheduled job {job_id} removed")
    store.save_state()


def _job_due(job: dict, now: datetime) -> bool:
    last_run = job.get("last_run")
    if last_run is None:
        return True
    age_minutes = (now - _parse(last_run)).total_seconds() / 60.0
    return age_minutes >= int(job.get("frequency_minutes", 0))


def check_and_run_scheduled_exports(now: Optional[datetime] = None) -> List[str]:
    """Run every scheduled job that is due. Returns the ids of the jobs attempted."""
    now = now or datetime.now(timezone.utc)
    attempted = []
    for job in store.scheduled_exports:
        job_id = job.get("job_id")
        if not _job_due(job, now):
            continue
        try:
            meta = generate_exports(created_by=job.get("created_by"))
            store.audit(f"Scheduled job {job_id} ran: {meta['export_id']}")
        except OSError as e:
            logger.exception(f"Scheduled job {job_id} failed")
            store.audit(f"Scheduled job {job_id} encountered error during export: {e}")
        finally:
            job["last_run"] = datetime.now(timezone.utc).isoformat()
            attempted.append(job_id)
    store.save_state()
    return attempted


def _scheduler_loop(poll_interval: int):
    while not _scheduler_stop_event.is_set():
        check_and_run_scheduled_exports()
        _scheduler_stop_event.wait(poll_interval)


def start_scheduler() -> bool:
    """Start the export scheduler thread when ENABLE_SCHEDULER=1. Returns whether it runs."""
    global _scheduler_thread
    if os.environ.get(settings.ENABLE_SCHEDULER_ENV, "0") != "1":
        return False
    if not _scheduler_thread or not _scheduler_thread.is_alive():
        _scheduler_stop_event.clear()
        _scheduler_thread = threading.Thread(
            target=_scheduler_loop, args=(settings.SCHEDULER_POLL_SECONDS,), daemon=True
        )
        _scheduler_thread.start()
        logger.info("Export scheduler started")
    return True


def stop_scheduler():
    _scheduler_stop_event.set()
    if _scheduler_thread and _scheduler_thread.is_alive():
        _scheduler_thread.join(timeout=2)
        logger.info("Export scheduler stopped")


# --- Banned IPs ---
def list_banned_ips() -> List[BannedIp]:
    return sorted(store.banned_ips, key=lambda b: b.created_at, reverse=True)


def ban_ip(actor: UserAccount, ip_address: str, reason: Optional[str] = None) -> BannedIp:
    accounts.require_admin(actor)
    ip_address = validators.validate_ip(ip_address)
    if accounts.is_ip_banned(ip_address):
        raise ValidationError("Esta dirección IP ya está bloqueada.")
    entry = BannedIp(id=uuid4(), ip_address=ip_address, reason=(reason or "").strip() or None, created_at=now_iso())
    store.banned_ips.append(entry)
    store.audit(f"{actor.email} banned IP {ip_address}")
    store.save_state()
    return entry


def unban_ip(actor: UserAccount, ban_id):
    accounts.require_admin(actor)
    entry = next((b for b in store.banned_ips if store.same_id(b.id, ban_id)), None)
    if not entry:
        raise NotFoundError("Bloqueo no encontrado.")
    store.banned_ips.remove(entry)
    store.audit(f"{actor.email} unbanned IP {entry.ip_address}")
    store.save_state()


# --- Platform settings ---
def update_platform_settings(actor: UserAccount, alerts_enabled: bool, radius_km: float, rate_limit_minutes: int):
    accounts.require_admin(actor)
    if radius_km <= 0:
        raise ValidationError("El radio de alerta debe ser mayor a 0 km.")
    if rate_limit_minutes < 0:
        raise ValidationError("El intervalo entre alertas no puede ser negativo.")
    cfg = store.platform_settings
    cfg.location_alerts_enabled = alerts_enabled
    cfg.location_alert_radius_km = radius_km
    cfg.location_alert_rate_limit_minutes = rate_limit_minutes
    store.audit(f"{actor.email} updated platform settings: alerts={alerts_enabled}, radius={radius_km} km")
    store.save_state()
    return cfg
