"""
Prompt text for the upstream completion service.
"""
from salon_research.config import DEFAULT_MODEL, VALID_SERVICE_CATEGORIES
from salon_research.models import CompletionRequest

LIST_SYSTEM_PROMPT = (
    "You are a thorough local business directory researcher covering beauty, wellness "
    "and personal care businesses. Find as many relevant, currently operating businesses as you can."
)

LIST_USER_PROMPT = """Find ALL beauty and wellness businesses currently operating in {suburb}, NSW, Australia.

Include:
- Hair salons, hairdressers and hair studios
- Beauty salons and beauticians
- Nail salons and nail bars
- Day spas and wellness centres
- Lash and brow studios
- Skin clinics and aesthetics centres
- Massage (remedial, Thai, relaxation)
- Waxing and laser hair removal clinics
- Makeup studios and cosmetic services

Exclude men's-only barbers (unless they also offer beauty services), tattoo and piercing studios,
medical clinics without cosmetic treatments, and gyms.

Aim for 40-60 businesses if the area has them. Use each business's exact trading name.
Return ONLY a JSON array of business names, e.g. ["Bella Hair Studio", "Glow Day Spa"]."""

DETAIL_SYSTEM_PROMPT = (
    "You are a JSON API endpoint. Return ONLY one valid JSON object, with no markdown, "
    "code fences or commentary. The response must start with { and end with }."
)

DETAIL_SECTIONS = (
    'Research the business "{name}" in {suburb}. Prefer data and photos from fresha.com where available.',
    """1. Basic information:
   - Full business name
   - Complete street address
   - Coordinates (latitude and longitude)
   - Short description
   - Primary service""",
    """2. Services and categories:
   - Service categories, ONLY from: {categories}
   - Top services with numeric prices (no currency symbols)""",
    """3. Business information:
   - Rating out of 5 and number of reviews
   - Contact number, contact email, Instagram handle
   - Website URL and online booking link
   - Business hours for each day in 24-hour HH:MM, or "closed\"""",
    """4. Photos:
   - 2-3 real, working image URLs of the salon, its work or storefront""",
    """Use '' , [] or {{}} when a value is unknown. Use exactly these keys:
{{"name": "", "address": "", "coordinates": {{"latitude": 0, "longitude": 0}}, "description": "",
"primaryService": "", "serviceCategories": [], "services": [{{"item": "", "price": 0}}],
"rating": {{"stars": 0, "numberOfReviewers": 0}}, "contactNumber": "", "contactEmail": "",
"instagram": "", "website": "", "bookingLink": "",
"businessHours": {{"monday": {{"open": "09:00", "close": "17:00"}}, "sunday": {{"open": "closed", "close": "closed"}}}},
"thumbnails": []}}""",
)


def build_list_request(suburb: str, model: str = DEFAULT_MODEL) -> CompletionRequest:
    return CompletionRequest.build(LIST_SYSTEM_PROMPT, LIST_USER_PROMPT.format(suburb=suburb), model)


def build_detail_request(name: str, suburb: str, model: str = DEFAULT_MODEL) -> CompletionRequest:
    user = "\n\n".join(DETAIL_SECTIONS).format(
        name=name,
        suburb=suburb,
        categories=", ".join(VALID_SERVICE_CATEGORIES),
    )
    return CompletionRequest.build(DETAIL_SYSTEM_PROMPT, user, model)
