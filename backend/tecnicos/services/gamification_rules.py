import math
import os
from typing import Any, Dict, List, Optional

POINT_VALUES: Dict[str, int] = {
    # Customer
    "BOOKING_COMPLETED": 50,
    "REVIEW_SUBMITTED": 20,
    "FIRST_BOOKING": 100,
    "REFERRAL_SIGNUP": 200,
    "REFERRAL_FIRST_BOOKING": 300,
    # Technician
    "JOB_COMPLETED": 100,
    "FIVE_STAR_REVIEW": 50,
    "QUICK_RESPONSE": 25,
    "ON_TIME_ARRIVAL": 25,
    "WEEKLY_STREAK": 75,
    # Bonuses
    "FIRST_JOB_OF_MONTH": 50,
    "PERFECT_WEEK": 100,
}

EVENT_DESCRIPTIONS: Dict[str, str] = {
    "BOOKING_COMPLETED": "Reserva completada",
    "REVIEW_SUBMITTED": "Reseña enviada",
    "FIRST_BOOKING": "Primera reserva - ¡Bienvenido!",
    "JOB_COMPLETED": "Trabajo completado",
    "FIVE_STAR_REVIEW": "Reseña de 5 estrellas recibida",
    "QUICK_RESPONSE": "Respuesta rápida (menos de 1 hora)",
    "ON_TIME_ARRIVAL": "Llegada puntual",
    "WEEKLY_STREAK": "Racha semanal completada",
    "REFERRAL_SIGNUP": "Usuario referido registrado",
    "REFERRAL_FIRST_BOOKING": "Usuario referido completó primera reserva",
}

LEVELS: List[Dict[str, Any]] = [
    {
        "level_number": 1,
        "name": "Rookie",
        "name_es": "Novato",
        "min_points": 0,
        "max_points": 499,
        "perks": {"badge": "bronze"},
    },
    {
        "level_number": 2,
        "name": "Apprentice",
        "name_es": "Aprendiz",
        "min_points": 500,
        "max_points": 1499,
        "perks": {"badge": "silver", "priority_support": True},
    },
    {
        "level_number": 3,
        "name": "Professional",
        "name_es": "Profesional",
        "min_points": 1500,
        "max_points": 3999,
        "perks": {"badge": "gold", "priority_support": True, "featured_listing": True},
    },
    {
        "level_number": 4,
        "name": "Expert",
        "name_es": "Experto",
        "min_points": 4000,
        "max_points": 7999,
        "perks": {"badge": "platinum", "priority_support": True, "featured_listing": True, "discount_rate": 5},
    },
    {
        "level_number": 5,
        "name": "Master",
        "name_es": "Maestro",
        "min_points": 8000,
        "max_points": 14999,
        "perks": {"badge": "diamond", "priority_support": True, "featured_listing": True, "discount_rate": 10},
    },
    {
        "level_number": 6,
        "name": "Elite",
        "name_es": "Elite",
        "min_points": 15000,
        "max_points": 999999999,
        "perks": {
            "badge": "elite",
            "priority_support": True,
            "featured_listing": True,
            "discount_rate": 15,
            "vip_access": True,
        },
    },
]

EARLY_ADOPTER_DEADLINE = os.getenv("EARLY_ADOPTER_DEADLINE", "2025-03-01")


def _achievement(
    code: str,
    name: str,
    name_es: str,
    description: str,
    description_es: str,
    category: str,
    points_reward: int,
    badge_color: str,
    requirements: Dict[str, Any],
    sort_order: int,
) -> Dict[str, Any]:
    return {
        "code": code,
        "name": name,
        "name_es": name_es,
        "description": description,
        "description_es": description_es,
        "category": category,
        "points_reward": points_reward,
        "badge_color": badge_color,
        "requirements": requirements,
        "sort_order": sort_order,
    }


ACHIEVEMENTS: List[Dict[str, Any]] = [
    # MILESTONE
    _achievement("FIRST_BOOKING", "First Steps", "Primeros Pasos", "Complete your first booking",
                 "Completa tu primera reserva", "MILESTONE", 100, "#10B981", {"bookings_completed": 1}, 1),
    _achievement("BOOKING_5", "Getting Started", "Comenzando", "Complete 5 bookings",
                 "Completa 5 reservas", "MILESTONE", 150, "#10B981", {"bookings_completed": 5}, 2),
    _achievement("BOOKING_10", "Regular Customer", "Cliente Frecuente", "Complete 10 bookings",
                 "Completa 10 reservas", "MILESTONE", 250, "#10B981", {"bookings_completed": 10}, 3),
    _achievement("BOOKING_25", "Loyal Customer", "Cliente Leal", "Complete 25 bookings",
                 "Completa 25 reservas", "MILESTONE", 500, "#F59E0B", {"bookings_completed": 25}, 4),
    _achievement("FIRST_JOB", "Working Professional", "Profesional Activo", "Complete your first job as a technician",
                 "Completa tu primer trabajo como técnico", "MILESTONE", 150, "#3B82F6",
                 {"jobs_completed": 1, "role": "technician"}, 5),
    _achievement("JOBS_10", "Experienced Technician", "Técnico Experimentado", "Complete 10 jobs",
                 "Completa 10 trabajos", "MILESTONE", 300, "#3B82F6", {"jobs_completed": 10, "role": "technician"}, 6),
    _achievement("JOBS_25", "Skilled Technician", "Técnico Habilidoso", "Complete 25 jobs",
                 "Completa 25 trabajos", "MILESTONE", 500, "#3B82F6", {"jobs_completed": 25, "role": "technician"}, 7),
    _achievement("JOBS_50", "Veteran Technician", "Técnico Veterano", "Complete 50 jobs",
                 "Completa 50 trabajos", "MILESTONE", 750, "#8B5CF6", {"jobs_completed": 50, "role": "technician"}, 8),
    _achievement("JOBS_100", "Master Technician", "Maestro Técnico", "Complete 100 jobs",
                 "Completa 100 trabajos", "MILESTONE", 1000, "#EC4899",
                 {"jobs_completed": 100, "role": "technician"}, 9),
    # QUALITY
    _achievement("FIVE_STAR_5", "Rising Star", "Estrella Naciente", "Receive 5 five-star reviews",
                 "Recibe 5 reseñas de 5 estrellas", "QUALITY", 200, "#FFD700",
                 {"five_star_reviews": 5, "role": "technician"}, 10),
    _achievement("FIVE_STAR_10", "Star Performer", "Estrella del Servicio", "Receive 10 five-star reviews",
                 "Recibe 10 reseñas de 5 estrellas", "QUALITY", 300, "#FFD700",
                 {"five_star_reviews": 10, "role": "technician"}, 11),
    _achievement("FIVE_STAR_25", "Excellence Champion", "Campeón de Excelencia", "Receive 25 five-star reviews",
                 "Recibe 25 reseñas de 5 estrellas", "QUALITY", 500, "#FFD700",
                 {"five_star_reviews": 25, "role": "technician"}, 12),
    _achievement("PERFECT_RATING", "Perfect Score", "Puntuación Perfecta",
                 "Maintain a 5.0 rating with at least 10 reviews", "Mantén un rating de 5.0 con al menos 10 reseñas",
                 "QUALITY", 400, "#C0C0C0", {"average_rating": 5.0, "min_reviews": 10, "role": "technician"}, 13),
    # ENGAGEMENT
    _achievement("FIRST_REVIEW", "Voice Heard", "Voz Escuchada", "Write your first review",
                 "Escribe tu primera reseña", "ENGAGEMENT", 50, "#6366F1", {"reviews_written": 1}, 14),
    _achievement("REVIEWER_5", "Community Helper", "Ayudante de la Comunidad", "Write 5 reviews",
                 "Escribe 5 reseñas", "ENGAGEMENT", 100, "#6366F1", {"reviews_written": 5}, 15),
    _achievement("REVIEWER_10", "Community Contributor", "Contribuidor de la Comunidad", "Write 10 reviews",
                 "Escribe 10 reseñas", "ENGAGEMENT", 200, "#6366F1", {"reviews_written": 10}, 16),
    _achievement("QUICK_RESPONDER", "Quick Responder", "Respuesta Rápida", "Respond to 10 bookings within 1 hour",
                 "Responde a 10 reservas en menos de 1 hora", "ENGAGEMENT", 200, "#14B8A6",
                 {"quick_responses": 10, "role": "technician"}, 17),
    _achievement("CONSISTENT_PERFORMER", "Consistent Performer", "Rendimiento Constante",
                 "Complete at least 1 job every week for 4 consecutive weeks",
                 "Completa al menos 1 trabajo cada semana por 4 semanas consecutivas", "ENGAGEMENT", 300, "#14B8A6",
                 {"consecutive_weeks": 4, "role": "technician"}, 18),
    # SPECIAL
    _achievement("EARLY_ADOPTER", "Early Adopter", "Pionero", "Join during the first month of launch",
                 "Únete durante el primer mes de lanzamiento", "SPECIAL", 500, "#9333EA",
                 {"registered_before": EARLY_ADOPTER_DEADLINE}, 19),
    _achievement("REFERRAL_1", "Friend Maker", "Hacedor de Amigos", "Refer 1 new user who completes a booking",
                 "Refiere 1 nuevo usuario que complete una reserva", "SPECIAL", 250, "#059669",
                 {"successful_referrals": 1}, 20),
    _achievement("REFERRAL_5", "Ambassador", "Embajador", "Refer 5 new users who complete bookings",
                 "Refiere 5 nuevos usuarios que completen reservas", "SPECIAL", 750, "#059669",
                 {"successful_referrals": 5}, 21),
    _achievement("VERIFIED_TECHNICIAN", "Verified Professional", "Profesional Verificado",
                 "Get verified as a technician", "Obtén verificación como técnico", "SPECIAL", 200, "#2563EB",
                 {"is_verified": True, "role": "technician"}, 22),
]

REWARDS: List[Dict[str, Any]] = [
    {
        "code": "DISCOUNT_5",
        "name": "5% Discount",
        "name_es": "5% de Descuento",
        "description": "Get 5% off your next booking",
        "description_es": "Obtén 5% de descuento en tu próxima reserva",
        "points_cost": 200,
        "category": "DISCOUNT",
        "value": {"discount_percent": 5},
    },
    {
        "code": "DISCOUNT_10",
        "name": "10% Discount",
        "name_es": "10% de Descuento",
        "description": "Get 10% off your next booking",
        "description_es": "Obtén 10% de descuento en tu próxima reserva",
        "points_cost": 400,
        "category": "DISCOUNT",
        "value": {"discount_percent": 10},
    },
    {
        "code": "DISCOUNT_15",
        "name": "15% Discount",
        "name_es": "15% de Descuento",
        "description": "Get 15% off your next booking",
        "description_es": "Obtén 15% de descuento en tu próxima reserva",
        "points_cost": 600,
        "category": "DISCOUNT",
        "value": {"discount_percent": 15},
    },
    {
        "code": "PRIORITY_LISTING",
        "name": "Priority Listing",
        "name_es": "Listado Prioritario",
        "description": "Get featured at the top of search results for 7 days",
        "description_es": "Aparece destacado en los resultados de búsqueda por 7 días",
        "points_cost": 500,
        "category": "FEATURE",
        "value": {"feature_id": "priority_listing", "duration_days": 7},
    },
    {
        "code": "FEATURED_BADGE",
        "name": "Featured Badge",
        "name_es": "Insignia Destacada",
        "description": "Display a special badge on your profile for 30 days",
        "description_es": "Muestra una insignia especial en tu perfil por 30 días",
        "points_cost": 300,
        "category": "FEATURE",
        "value": {"feature_id": "featured_badge", "duration_days": 30},
    },
    {
        "code": "FREE_BOOKING",
        "name": "Free Booking",
        "name_es": "Reserva Gratis",
        "description": "Get one booking completely free (up to RD$2,000)",
        "description_es": "Obtén una reserva completamente gratis (hasta RD$2,000)",
        "points_cost": 1500,
        "category": "DISCOUNT",
        "value": {"free_booking": True, "max_value": 2000},
    },
]

SERVICE_TYPES: List[Dict[str, str]] = [
    {"code": "REPAIR", "name": "Repair", "name_es": "Reparación"},
    {"code": "INSTALLATION", "name": "Installation", "name_es": "Instalación"},
    {"code": "MAINTENANCE", "name": "Maintenance", "name_es": "Mantenimiento"},
    {"code": "INSPECTION", "name": "Inspection", "name_es": "Inspección"},
    {"code": "CONSULTATION", "name": "Consultation", "name_es": "Consulta"},
    {"code": "EMERGENCY", "name": "Emergency", "name_es": "Emergencia"},
]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def calculate_level(points: int) -> Dict[str, Any]:
    for level in reversed(LEVELS):
        if points >= level["min_points"]:
            return level
    return LEVELS[0]


def next_level(points: int) -> Optional[Dict[str, Any]]:
    current = calculate_level(points)
    index = LEVELS.index(current)
    if index < len(LEVELS) - 1:
        return LEVELS[index + 1]
    return None


def points_to_next_level(points: int) -> int:
    upcoming = next_level(points)
    if upcoming is None:
        return 0
    return upcoming["min_points"] - points


def level_progress(points: int) -> int:
    current = calculate_level(points)
    level_range = current["max_points"] - current["min_points"]
    points_in_level = points - current["min_points"]
    return max(0, min(100, _round_half_up(points_in_level / level_range * 100)))


def get_level(level_number: int) -> Dict[str, Any]:
    for level in LEVELS:
        if level["level_number"] == level_number:
            return level
    return LEVELS[0]
