"""
Business directory (veterinaries, pet shops, groomers, pet hotels) and
community campaigns, including the ones users report for review.
"""
from datetime import date
from typing import Any, Dict, List, Optional
from uuid import uuid4

from loguru import logger

import accounts
import community
import store
import validators
from constants import BusinessType, CampaignReportStatus, CampaignType, TODOS
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import Business, BusinessProduct, Campaign, CampaignReport, UserAccount, now_iso

BUSINESS_FIELDS = [
    "name", "type", "description", "address", "phone", "whatsapp", "website", "facebook",
    "instagram", "logo_url", "cover_url", "services", "lat", "lng",
]
CAMPAIGN_FIELDS = ["type", "title", "description", "location", "date", "contact_phone", "image_urls", "lat", "lng"]


def _pick(data: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if k in fields and v is not None}


# --- Businesses ---
def _validate_business(data: Dict[str, Any]):
    if "name" in data and not (data["name"] or "").strip():
        raise ValidationError("El nombre del negocio es obligatorio.")
    if "type" in data:
        validators.validate_choice(data["type"], BusinessType.ALL, "Tipo de negocio")
    if "lat" in data or "lng" in data:
        validators.validate_coordinates(data.get("lat"), data.get("lng"))


def get_business(business_id) -> Business:
    business = store.find_business(business_id)
    if not business:
        raise NotFoundError("Negocio no encontrado.")
    return business


def products_for(business_id) -> List[BusinessProduct]:
    rows = [p for p in store.business_products if store.same_id(p.business_id, business_id)]
    rows.sort(key=lambda p: p.created_at)
    return rows


def business_by_owner(owner_id) -> Optional[Business]:
    return next((b for b in store.businesses if store.same_id(b.owner_id, owner_id)), None)


def list_businesses(business_type: Optional[str] = None) -> List[Business]:
    rows = list(store.businesses)
    if business_type and business_type != TODOS:
        rows = [b for b in rows if b.type == business_type]
    # Verified businesses first, then by name
    rows.sort(key=lambda b: (not b.is_verified, b.name.lower()))
    return rows


def businesses_for_map() -> List[Business]:
    return [b for b in store.businesses if b.lat is not None and b.lng is not None]


def _can_manage_business(actor: Optional[UserAccount], business: Business) -> bool:
    return bool(actor) and (store.same_id(actor.id, business.owner_id) or accounts.is_admin(actor))


def create_business(owner: UserAccount, data: Dict[str, Any]) -> Business:
    if business_by_owner(owner.id):
        raise ValidationError("Ya tienes un negocio registrado.")
    fields = _pick(data, BUSINESS_FIELDS)
    if not fields.get("name") or not fields.get("type"):
        raise ValidationError("El nombre y el tipo de negocio son obligatorios.")
    _validate_business(fields)
    fields["name"] = fields["name"].strip()
    business = Business(id=uuid4(), owner_id=owner.id, created_at=now_iso(), **fields)
    store.businesses.append(business)
    owner.business_id = business.id
    store.audit(f"{owner.email} created business {business.name}")
    store.save_state()
    return business


def managed_business(actor: UserAccount, business_id) -> Business:
    business = get_business(business_id)
    if not _can_manage_business(actor, business):
        raise PermissionDeniedError("No tienes permiso para editar este negocio.")
    return business


def update_business(actor: UserAccount, business_id, data: Dict[str, Any]) -> Business:
    business = managed_business(actor, business_id)
    fields = _pick(data, BUSINESS_FIELDS)
    _validate_business(fields)
    for field, value in fields.items():
        setattr(business, field, value)
    store.save_state()
    return business


def delete_business(actor: UserAccount, business_id):
    accounts.require_admin(actor)
    business = get_business(business_id)
    store.business_products[:] = [p for p in store.business_products if not store.same_id(p.business_id, business.id)]
    owner = store.find_user(business.owner_id)
    if owner:
        owner.business_id = None
    store.businesses.remove(business)
    store.audit(f"{actor.email} deleted business {business.name}")
    store.save_state()


def verify_business(actor: UserAccount, business_id, verified: bool = True) -> Business:
    accounts.require_admin(actor)
    business = get_business(business_id)
    business.is_verified = verified
    store.audit(f"{actor.email} set business {business.name} verified={verified}")
    store.save_state()
    return business


# --- Products ---
def _validate_product(name: Optional[str], price: Optional[float]):
    if name is not None and not name.strip():
        raise ValidationError("El nombre del producto es obligatorio.")
    if price is not None and price < 0:
        raise ValidationError("El precio no puede ser negativo.")


def add_product(actor: UserAccount, business_id, name: str, description: Optional[str] = None,
                price: Optional[float] = None, image_url: Optional[str] = None) -> BusinessProduct:
    business = managed_business(actor, business_id)
    _validate_product(name or "", price)
    product = BusinessProduct(
        id=uuid4(),
        business_id=business.id,
        name=name.strip(),
        description=description,
        price=price,
        image_url=image_url,
        created_at=now_iso(),
    )
    store.business_products.append(product)
    store.save_state()
    return product


def managed_product(actor: UserAccount, product_id) -> BusinessProduct:
    product = store.find_product(product_id)
    if not product:
        raise NotFoundError("Producto no encontrado.")
    if not _can_manage_business(actor, get_business(product.business_id)):
        raise PermissionDeniedError("No tienes permiso para editar este negocio.")
    return product


def update_product(actor: UserAccount, product_id, name: Optional[str] = None, description: Optional[str] = None,
                   price: Optional[float] = None, image_url: Optional[str] = None) -> BusinessProduct:
    product = managed_product(actor, product_id)
    _validate_product(name, price)
    if name is not None:
        product.name = name.strip()
    if description is not None:
        product.description = description
    if price is not None:
        product.price = price
    if image_url:
        product.image_url = image_url
    store.save_state()
    return product


def delete_product(actor: UserAccount, product_id):
    product = managed_product(actor, product_id)
    store.business_products.remove(product)
    store.save_state()


# --- Campaigns ---
def _validate_campaign(data: Dict[str, Any]):
    if "type" in data:
        validators.validate_choice(data["type"], CampaignType.ALL, "Tipo de campaña")
    if "title" in data and not (data["title"] or "").strip():
        raise ValidationError("El título de la campaña es obligatorio.")
    if data.get("date"):
        try:
            date.fromisoformat(data["date"])
        except ValueError:
            raise ValidationError("Fecha de campaña inválida.")
    if "lat" in data or "lng" in data:
        validators.validate_coordinates(data.get("lat"), data.get("lng"))


def get_campaign(campaign_id) -> Campaign:
    campaign = store.find_campaign(campaign_id)
    if not campaign:
        raise NotFoundError("Campaña no encontrada.")
    return campaign


def _can_manage_campaign(actor: Optional[UserAccount], campaign: Campaign) -> bool:
    if not actor:
        return False
    creator = (campaign.user_email or "").lower()
    return accounts.is_staff(actor) or creator == actor.email.lower()


def create_campaign(actor: UserAccount, data: Dict[str, Any]) -> Campaign:
    accounts.require_staff(actor)
    fields = _pick(data, CAMPAIGN_FIELDS)
    if not fields.get("type") or not fields.get("title"):
        raise ValidationError("El tipo y el título de la campaña son obligatorios.")
    _validate_campaign(fields)
    campaign = Campaign(id=uuid4(), user_email=actor.email, created_at=now_iso(), **fields)
    store.campaigns.append(campaign)
    store.audit(f"{actor.email} created campaign {campaign.title}")
    store.save_state()
    return campaign


def managed_campaign(actor: UserAccount, campaign_id) -> Campaign:
    campaign = get_campaign(campaign_id)
    if not _can_manage_campaign(actor, campaign):
        raise PermissionDeniedError("No tienes permiso para editar esta campaña.")
    return campaign


def update_campaign(actor: UserAccount, campaign_id, data: Dict[str, Any]) -> Campaign:
    campaign = managed_campaign(actor, campaign_id)
    fields = _pick(data, CAMPAIGN_FIELDS)
    _validate_campaign(fields)
    for field, value in fields.items():
        setattr(campaign, field, value)
    store.save_state()
    return campaign


def delete_campaign(actor: UserAccount, campaign_id):
    campaign = get_campaign(campaign_id)
    if not _can_manage_campaign(actor, campaign):
        raise PermissionDeniedError("No tienes permiso para eliminar esta campaña.")
    store.campaigns.remove(campaign)
    store.audit(f"{actor.email} deleted campaign {campaign.title}")
    store.save_state()


def list_campaigns(campaign_type: Optional[str] = None) -> List[Campaign]:
    rows = list(store.campaigns)
    if campaign_type and campaign_type != TODOS:
        rows = [c for c in rows if c.type == campaign_type]
    rows.sort(key=lambda c: c.created_at, reverse=True)
    return rows


def active_campaigns(today: Optional[date] = None) -> List[Campaign]:
    """Campaigns dated today or later, soonest first."""
    today_iso = (today or date.today()).isoformat()
    rows = [c for c in store.campaigns if c.date and c.date >= today_iso]
    rows.sort(key=lambda c: c.date)
    return rows


def campaigns_for_map() -> List[Campaign]:
    return [c for c in store.campaigns if c.lat is not None and c.lng is not None]


# --- Campaign reports ---
REPORT_LOCATION_FIELDS = [("department", "departamento"), ("province", "provincia"), ("district", "distrito")]


def validate_campaign_report(address: str, social_link: str, department: str, province: str,
                             district: str) -> Dict[str, str]:
    if not (address or "").strip():
        raise ValidationError("La dirección de la campaña es obligatoria.")
    fields = {"address": address.strip(), "social_link": validators.validate_social_link(social_link)}
    location = {"department": department, "province": province, "district": district}
    for field, label in REPORT_LOCATION_FIELDS:
        if not (location[field] or "").strip():
            raise ValidationError(f"Por favor, selecciona un {label}.")
        fields[field] = location[field].strip()
    return fields


def create_campaign_report(user: UserAccount, address: str, social_link: str, department: str, province: str,
                           district: str, image_url: Optional[str] = None) -> CampaignReport:
    """File a campaign seen elsewhere so staff can review and publish it."""
    fields = validate_campaign_report(address, social_link, department, province, district)
    report = CampaignReport(
        id=uuid4(), user_id=user.id, user_email=user.email, image_url=image_url, created_at=now_iso(), **fields
    )
    store.campaign_reports.append(report)
    logger.info(f"{user.email} reported a campaign in {report.district}")
    store.save_state()
    return report


def list_campaign_reports(actor: UserAccount, status: Optional[str] = None) -> List[CampaignReport]:
    accounts.require_staff(actor)
    rows = list(store.campaign_reports)
    if status and status != TODOS:
        rows = [r for r in rows if r.status == status]
    rows.sort(key=lambda r: r.created_at, reverse=True)
    return rows


def _pending_campaign_report(actor: UserAccount, report_id) -> CampaignReport:
    accounts.require_staff(actor)
    report = store.find_campaign_report(report_id)
    if not report:
        raise NotFoundError("Reporte de campaña no encontrado.")
    if report.status != CampaignReportStatus.PENDING:
        raise ValidationError("Este reporte de campaña ya fue revisado.")
    return report


def approve_campaign_report(actor: UserAccount, report_id, campaign_type: str, title: Optional[str] = None,
                            campaign_date: Optional[str] = None) -> Campaign:
    """Publish a pending report as a campaign and tell the reporter."""
    report = _pending_campaign_report(actor, report_id)
    validators.validate_choice(campaign_type, CampaignType.ALL, "Tipo de campaña")
    data = {
        "type": campaign_type,
        "title": (title or "").strip() or f"Campaña de {campaign_type.lower()} en {report.district}",
        "description": f"Más información: {report.social_link}",
        "location": f"{report.address}, {report.district}, {report.province}, {report.department}",
        "date": campaign_date or None,
    }
    if report.image_url:
        data["image_urls"] = [report.image_url]
    campaign = create_campaign(actor, data)

    report.status = CampaignReportStatus.APPROVED
    report.campaign_id = campaign.id
    report.updated_at = now_iso()
    if report.user_id:
        community.notify(report.user_id, f"Publicamos la campaña que reportaste en {report.district}. ¡Gracias!",
                         link=f"/campaigns/{campaign.id}")
    store.audit(f"{actor.email} approved campaign report {report.id}")
    store.save_state()
    return campaign


def reject_campaign_report(actor: UserAccount, report_id) -> CampaignReport:
    report = _pending_campaign_report(actor, report_id)
    report.status = CampaignReportStatus.REJECTED
    report.updated_at = now_iso()
    if report.user_id:
        community.notify(report.user_id, f"No pudimos publicar la campaña que reportaste en {report.district}.")
    store.audit(f"{actor.email} rejected campaign report {report.id}")
    store.save_state()
    return report


def delete_campaign_report(actor: UserAccount, report_id):
    accounts.require_staff(actor)
    report = store.find_campaign_report(report_id)
    if not report:
        raise NotFoundError("Reporte de campaña no encontrado.")
    store.campaign_reports.remove(report)
    store.audit(f"{actor.email} deleted campaign report {report.id}")
    store.save_state()
