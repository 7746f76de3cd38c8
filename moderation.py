"""
Content reports and support tickets.

Any signed-in user can report a post, a comment or another user; staff
resolve reports. Resolving a report as "Eliminado" removes the reported
content (or deactivates the reported account).
"""
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

import accounts
import community
import pets
import store
import validators
from constants import REPORT_TYPES, ReportReason, ReportStatus, TicketCategory, TicketStatus, UserStatus
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Report, SupportTicket, UserAccount, now_iso


# --- Reports ---
def _snapshot(report_type: str, target_id: str):
    """Return (reported_email, snapshot) for the reported target."""
    if report_type == "post":
        pet = store.find_pet(target_id)
        if not pet:
            raise NotFoundError("Publicación no encontrada.")
        owner = store.find_user(pet.user_id)
        return (owner.email if owner else ""), pet.model_dump(mode="json", exclude={"embedding"})
    if report_type == "comment":
        comment = store.find_comment(target_id)
        if not comment:
            raise NotFoundError("Comentario no encontrado.")
        return comment.user_email, {"text": comment.text, "pet_id": str(comment.pet_id)}
    user = store.find_user(target_id)
    if not user:
        raise NotFoundError("Usuario no encontrado.")
    return user.email, None


def create_report(reporter: UserAccount, report_type: str, target_id: str, reason: str, details: str = "") -> Report:
    validators.validate_choice(report_type, REPORT_TYPES, "Tipo de reporte")
    validators.validate_choice(reason, ReportReason.ALL, "Motivo")
    reported_email, snapshot = _snapshot(report_type, str(target_id))
    if reported_email and reported_email.lower() == reporter.email.lower():
        raise ValidationError("No puedes reportar tu propio contenido.")

    report = Report(
        id=uuid4(),
        reporter_email=reporter.email,
        reported_email=reported_email,
        type=report_type,
        target_id=str(target_id),
        reason=reason,
        details=(details or "").strip() or None,
        post_snapshot=snapshot,
        created_at=now_iso(),
    )
    store.reports.append(report)
    store.audit(f"{reporter.email} reported {report_type} {target_id}: {reason}")
    store.save_state()
    return report


def list_reports(reporter_email: Optional[str] = None, status: Optional[str] = None) -> List[Report]:
    rows = list(store.reports)
    if reporter_email:
        rows = [r for r in rows if r.reporter_email.lower() == reporter_email.lower()]
    if status:
        rows = [r for r in rows if r.status == status]
    rows.sort(key=lambda r: r.created_at, reverse=True)
    return rows


def _apply_elimination(staff: UserAccount, report: Report):
    if report.type == "post":
        pet = store.find_pet(report.target_id)
        if pet:
            pets.remove_pet(pet)
            community.notify(pet.user_id, "Tu publicación fue eliminada por infringir las normas de la comunidad.")
    elif report.type == "comment":
        comment = store.find_comment(report.target_id)
        if comment:
            community.remove_comment_tree(comment.id)
    else:
        user = store.find_user(report.target_id)
        if user and not accounts.is_superadmin(user) and not store.same_id(user.id, staff.id):
            user.status = UserStatus.INACTIVE


def update_report_status(staff: UserAccount, report_id, status: str) -> Report:
    accounts.require_staff(staff)
    validators.validate_choice(status, ReportStatus.ALL, "Estado")
    report = store.find_report(report_id)
    if not report:
        raise NotFoundError("Reporte no encontrado.")
    if status == ReportStatus.ELIMINATED and report.status != ReportStatus.ELIMINATED:
        _apply_elimination(staff, report)
    report.status = status

    reporter = store.find_user_by_email(report.reporter_email)
    if reporter:
        community.notify(reporter.id, f"Tu reporte fue revisado: {status}.", link="/support")
    store.audit(f"{staff.email} set report {report.id} to {status}")
    store.save_state()
    return report


def pending_reports_count() -> int:
    return len([r for r in store.reports if r.status == ReportStatus.PENDING])


# --- Support tickets ---
def create_ticket(user: UserAccount, category: str, subject: str, description: str,
                  related_report_id=None) -> SupportTicket:
    validators.validate_choice(category, TicketCategory.ALL, "Categoría")
    subject = (subject or "").strip()
    description = (description or "").strip()
    if not subject or not description:
        raise ValidationError("Por favor, completa el asunto y la descripción.")
    if related_report_id and not store.find_report(related_report_id):
        raise NotFoundError("Reporte no encontrado.")

    ticket = SupportTicket(
        id=uuid4(),
        user_email=user.email,
        category=category,
        subject=subject,
        description=description,
        related_report_id=related_report_id or None,
        created_at=now_iso(),
    )
    store.support_tickets.append(ticket)
    store.audit(f"{user.email} opened ticket {ticket.id}: {subject}")
    store.save_state()
    return ticket


def tickets_for(email: Optional[str] = None) -> List[SupportTicket]:
    rows = list(store.support_tickets)
    if email:
        rows = [t for t in rows if t.user_email.lower() == email.lower()]
    rows.sort(key=lambda t: t.created_at, reverse=True)
    return rows


def get_ticket_for(user: UserAccount, ticket_id) -> SupportTicket:
    ticket = store.find_ticket(ticket_id)
    if not ticket:
        raise NotFoundError("Ticket no encontrado.")
    if ticket.user_email.lower() != user.email.lower() and not accounts.is_staff(user):
        raise PermissionDeniedError("Acción no permitida.")
    return ticket


def update_ticket(staff: UserAccount, ticket_id, status: Optional[str] = None, response: Optional[str] = None,
                  assigned_to: Optional[str] = None, now: Optional[datetime] = None) -> SupportTicket:
    accounts.require_staff(staff)
    ticket = store.find_ticket(ticket_id)
    if not ticket:
        raise NotFoundError("Ticket no encontrado.")
    if status:
        validators.validate_choice(status, TicketStatus.ALL, "Estado")
    timestamp = (now or datetime.now(timezone.utc)).isoformat()

    if assigned_to is not None:
        assigned_to = assigned_to.strip() or None
        if assigned_to != ticket.assigned_to:
            ticket.assigned_to = assigned_to
            if assigned_to:
                ticket.assignment_history.append({"adminEmail": assigned_to, "timestamp": timestamp})

    changed = False
    if status and status != ticket.status:
        ticket.status = status
        changed = True
    if response is not None and response.strip() and response.strip() != (ticket.response or ""):
        ticket.response = response.strip()
        changed = True

    if changed:
        owner = store.find_user_by_email(ticket.user_email)
        if owner:
            community.notify(
                owner.id,
                f"Tu ticket \"{ticket.subject}\" fue actualizado: {ticket.status}.",
                link="/support",
            )
    store.audit(f"{staff.email} updated ticket {ticket.id}")
    store.save_state()
    return ticket


def pending_tickets_count() -> int:
    return len([t for t in store.support_tickets if t.status == TicketStatus.PENDING])
