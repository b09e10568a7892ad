"""
Outbound message templates.
"""

from ..services.shopping import ShoppingProduct
from ..services.vision import SkinToneAnalysis

MAIN_MENU = """1. Color Analysis & Shopping Recommendations
2. Virtual Try-On
3. End Chat"""

WELCOME_MESSAGE = f"""Welcome to WhatsApp Fashion Buddy!
I can help you find clothes that match your skin tone or try on clothes virtually.
What would you like to do today?

{MAIN_MENU}"""

REGISTER_FIRST = "Please start your chat from our website first to register your number."

PHOTO_PROMPT = (
    "Great! Let's analyze your skin tone to give you personalized color recommendations!\n\n"
    "Please send a clear selfie in natural light."
)
PHOTO_REPROMPT = "Please send a selfie so I can analyze your skin tone."
PHOTO_RETRY = (
    "Sorry, I couldn't analyze that photo. Please try again with a clear, "
    "well-lit selfie that shows your face."
)

TRYON_PHOTO_PROMPT = (
    "For virtual try-on, I'll need a full-body photo of yourself.\n\n"
    "Please send your full-body photo first."
)
TRYON_PHOTO_REPROMPT = "Please send your full-body photo to continue."
TRYON_PHOTO_MISSING = (
    "I don't have your full-body photo anymore. "
    "Please send it again so we can continue with the try-on."
)

CLOTHING_PROMPT = (
    "Great! Now describe the garment you'd like to try on "
    "(for example: \"navy blue linen kurta\")."
)
CLOTHING_REPROMPT = "Please describe the garment you'd like to try on."
CLOTHING_RETRY = (
    "Sorry, I couldn't create your virtual try-on right now. "
    "Please send the garment description again to retry."
)
CLOTHING_AGAIN = "Please describe another garment you'd like to try on."

TRYON_RESULT = """Here's how it would look on you!

Would you like to:
1. Try another garment
2. Return to main menu"""
TRYON_RESULT_REPROMPT = """Please reply with:
1. Try another garment
2. Return to main menu"""

BUDGET_MENU = """Would you like to see clothing recommendations in these colors?
1. Budget Range ₹500-₹1500
2. Budget Range ₹1500-₹3000
3. Budget Range ₹3000+
4. Return to Main Menu"""
BUDGET_REPROMPT = "Please select a valid budget range (1-3) or 4 to return to main menu"
SKIN_TONE_MISSING = (
    "I don't have a skin tone analysis for you yet. "
    "Please reply 4 to return to the main menu and start a color analysis."
)
NO_PRODUCTS = (
    "I couldn't find products in that budget range right now. "
    "Please pick another range (1-3) or 4 to return to main menu."
)
SEARCH_FAILED = f"""Sorry, I couldn't fetch product recommendations right now. Please try again in a little while.

{MAIN_MENU}"""

PRODUCTS_FOOTER = "What would you like to do next?\n3. Return to Main Menu"
PRODUCTS_REPROMPT = "Reply 3 to return to the main menu."

FAREWELL = "Thank you for using WhatsApp Fashion Buddy! Have a great day! 👋"

UPGRADE_PROMPT = f"""You've used all the free {{feature}} included in your plan.
Upgrade to Premium on our website for unlimited color analyses and virtual try-ons.

{MAIN_MENU}"""

PROCESSING_FAILED = "Sorry, something went wrong on my end. Please send your last message again."

FEATURE_LABELS = {
    "color_analysis": "color analyses",
    "virtual_tryon": "virtual try-ons",
}


def upgrade_prompt(feature: str) -> str:
    return UPGRADE_PROMPT.format(feature=FEATURE_LABELS.get(feature, feature))


def analysis_result(analysis: SkinToneAnalysis) -> str:
    return f"""🔍 Based on my analysis, your skin tone appears to be:
Skin Tone: {analysis.tone}
Undertone: {analysis.undertone}

Recommended Colors:
{", ".join(analysis.recommended_colors)}

Colors to Avoid:
{", ".join(analysis.colors_to_avoid)}

{BUDGET_MENU}"""


def product_list(products: list[ShoppingProduct]) -> str:
    lines = ["🛍️ Here are some recommendations based on your skin tone:", ""]
    for i, p in enumerate(products, 1):
        lines.append(f"{i}. {p.title}")
        lines.append(f"💰 Price: ₹{p.price:,.0f}")
        lines.append(f"👕 Brand: {p.brand}")
        if p.source:
            lines.append(f"🏪 From: {p.source}")
        lines.append(f"🔗 {p.link}")
        lines.append("")
    lines.append(PRODUCTS_FOOTER)
    return "\n".join(lines)
