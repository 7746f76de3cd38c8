"""Display values shared by forms, filters and stored records."""

TODOS = "Todos"


class PetStatus:
    PERDIDO = "Perdido"
    ENCONTRADO = "Encontrado"
    AVISTADO = "Avistado"
    EN_ADOPCION = "En Adopción"
    REUNIDO = "Reunido"

    ALL = [PERDIDO, ENCONTRADO, AVISTADO, EN_ADOPCION, REUNIDO]


class AnimalType:
    PERRO = "Perro"
    GATO = "Gato"
    OTRO = "Otro"

    ALL = [PERRO, GATO, OTRO]


class Size:
    PEQUENO = "Pequeño"
    MEDIANO = "Mediano"
    GRANDE = "Grande"

    ALL = [PEQUENO, MEDIANO, GRANDE]


class Role:
    SUPERADMIN = "Superadmin"
    ADMIN = "Admin"
    MODERATOR = "Moderator"
    USER = "User"

    ALL = [SUPERADMIN, ADMIN, MODERATOR, USER]
    STAFF = [SUPERADMIN, ADMIN, MODERATOR]
    ADMINS = [SUPERADMIN, ADMIN]


class UserStatus:
    ACTIVE = "Activo"
    INACTIVE = "Inactivo"

    ALL = [ACTIVE, INACTIVE]


class ReportReason:
    INAPPROPRIATE_CONTENT = "Contenido inapropiado"
    SPAM = "Spam o publicidad"
    SCAM = "Estafa o fraude"
    HARASSMENT = "Acoso o discurso de odio"
    FALSE_INFORMATION = "Información falsa"
    OTHER = "Otro"

    ALL = [INAPPROPRIATE_CONTENT, SPAM, SCAM, HARASSMENT, FALSE_INFORMATION, OTHER]


class ReportStatus:
    PENDING = "Pendiente"
    ELIMINATED = "Eliminado"
    INVALID = "Reporte Inválido"
    NO_ACTION = "Sin Acciones"

    ALL = [PENDING, ELIMINATED, INVALID, NO_ACTION]


REPORT_TYPES = ["post", "user", "comment"]


class TicketStatus:
    PENDING = "Pendiente"
    IN_PROGRESS = "En Progreso"
    RESOLVED = "Resuelto"
    NOT_RESOLVED = "No Resuelto"

    ALL = [PENDING, IN_PROGRESS, RESOLVED, NOT_RESOLVED]


class TicketCategory:
    TECHNICAL_ISSUE = "Problema Técnico"
    ACCOUNT_HELP = "Ayuda con la Cuenta"
    GENERAL_INQUIRY = "Consulta General"
    FEEDBACK = "Sugerencia o Feedback"
    REPORT_FOLLOWUP = "Seguimiento de Reporte"

    ALL = [TECHNICAL_ISSUE, ACCOUNT_HELP, GENERAL_INQUIRY, FEEDBACK, REPORT_FOLLOWUP]


class CampaignType:
    ESTERILIZACION = "Esterilización"
    ADOPCION = "Adopción"

    ALL = [ESTERILIZACION, ADOPCION]


class CampaignReportStatus:
    PENDING = "Pendiente"
    APPROVED = "Aprobado"
    REJECTED = "Rechazado"

    ALL = [PENDING, APPROVED, REJECTED]


class BusinessType:
    VETERINARIA = "Veterinaria"
    PET_SHOP = "Pet Shop"
    ESTETICA = "Estética/Grooming"
    HOTEL = "Hospedaje"

    ALL = [VETERINARIA, PET_SHOP, ESTETICA, HOTEL]


CURRENCIES = ["S/", "$"]
