"""
Personalization and Message Composer

Renders outreach text for an automation trigger by filling a template
with customer fields. Templates are looked up by the tag a trigger moved
to (or the first behavior tag gained), with transition overrides for
win-backs. Every tag value has a template; anything unrecognised falls
back to the generic template, so a valid trigger always yields a message.
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple, Type, TypeVar

import structlog

from restaurant_crm.config import MessagingSettings, get_settings
from restaurant_crm.tagging.models import (
    ActivityTag,
    AutomationTrigger,
    BehaviorTag,
    Customer,
    SpendTag,
    TagDimension,
    sort_behavior_tags,
)

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Enum)


@dataclass(frozen=True)
class OutboundMessage:
    """Plain-text message handed to the delivery provider"""
    body: str
    subject: Optional[str] = None
    short_text: Optional[str] = None


@dataclass(frozen=True)
class MessageTemplate:
    subject: str
    body: str
    short_text: str


@dataclass(frozen=True)
class PersonalizationProfile:
    """What to offer a customer and how to talk to them"""
    favorite_items: Tuple[str, ...]
    preferred_categories: Tuple[str, ...]
    recommended_items: Tuple[str, ...]
    discount_sensitivity: str
    message_tone: str
    optimal_contact_time: str


# =============================================================================
# TEMPLATES
# =============================================================================

GENERIC_TEMPLATE = MessageTemplate(
    subject="Something special for you, {first_name}",
    body=(
        "Dear {first_name},\n\n"
        "We have something special waiting for you at {restaurant}. "
        "Visit us soon to discover what's new on the menu.\n\n"
        "Best regards,\n{sign_off}"
    ),
    short_text="Hi {first_name}! A special offer is waiting for you at {restaurant}.",
)

SPEND_TEMPLATES: Dict[SpendTag, MessageTemplate] = {
    SpendTag.HIGH_SPENDER: MessageTemplate(
        subject="{first_name}, you're one of our most valued guests",
        body=(
            "Dear {first_name},\n\n"
            "Thank you for choosing {restaurant} so often. As one of our most valued guests "
            "you now enjoy priority seating and a complimentary tasting of the chef's specials. "
            "Your favourites ({favorites}) will be ready whenever you are.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="{first_name}, thank you for being one of our most valued guests! Priority seating is yours.",
    ),
    SpendTag.MID_SPENDER: MessageTemplate(
        subject="Something new to try, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Since you enjoyed {favorites}, we think you'll love this season's specials. "
            "Come by and try them with {discount}% off.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! New specials at {restaurant}, {discount}% off for you.",
    ),
    SpendTag.LOW_SPENDER: MessageTemplate(
        subject="Great value meals for you, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Our value meals and daily deals are back at {restaurant}. "
            "Enjoy {discount}% off your next order.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Daily deals are on, {discount}% off your next order.",
    ),
    SpendTag.INSUFFICIENT_DATA: MessageTemplate(
        subject="Welcome to {restaurant}, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Thank you for joining {restaurant}. We look forward to serving you soon.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Welcome to {restaurant}.",
    ),
}

ACTIVITY_TEMPLATES: Dict[ActivityTag, MessageTemplate] = {
    ActivityTag.NEW_CUSTOMER: MessageTemplate(
        subject="Welcome {first_name}! Your {discount}% discount awaits",
        body=(
            "Dear {first_name},\n\n"
            "Welcome to {restaurant}! We're glad you found us. Enjoy {discount}% off your next visit "
            "and try some of our guests' favourites: {recommended}.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Welcome! Get {discount}% off your next order at {restaurant}.",
    ),
    ActivityTag.ACTIVE: MessageTemplate(
        subject="Thanks for visiting, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Thank you for your visit on {last_visit}. We hope you enjoyed {top_favorite} "
            "and look forward to seeing you again.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Thanks for visiting {restaurant}, {first_name}! See you soon.",
    ),
    ActivityTag.AT_RISK: MessageTemplate(
        subject="We miss you {first_name}! {discount}% off to welcome you back",
        body=(
            "Dear {first_name},\n\n"
            "It's been a while since your last visit on {last_visit} and we miss having you! "
            "Come back and enjoy {discount}% off your meal, plus your favourite {top_favorite}.\n\n"
            "Warm regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}, we miss you! Get {discount}% off your comeback visit.",
    ),
    ActivityTag.DORMANT: MessageTemplate(
        subject="{first_name}, we have something special for you",
        body=(
            "Dear {first_name},\n\n"
            "We haven't seen you since {last_visit}, and we've added new {category} to the menu "
            "that we think you'd enjoy. Come back and try them with {dormant_discount}% off your order.\n\n"
            "We hope to see you soon,\n{sign_off}"
        ),
        short_text="Hi {first_name}! New {category} at {restaurant}. Come back with {dormant_discount}% off.",
    ),
    ActivityTag.INSUFFICIENT_DATA: MessageTemplate(
        subject="Welcome to {restaurant}, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Thank you for joining {restaurant}. Enjoy {discount}% off your first order.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Enjoy {discount}% off your first order at {restaurant}.",
    ),
}

ACTIVITY_TRANSITION_TEMPLATES: Dict[Tuple[ActivityTag, ActivityTag], MessageTemplate] = {
    (ActivityTag.AT_RISK, ActivityTag.ACTIVE): MessageTemplate(
        subject="Welcome back, {first_name}!",
        body=(
            "Dear {first_name},\n\n"
            "It was wonderful to see you again. As a thank-you, your next {top_favorite} is on us.\n\n"
            "Warm regards,\n{sign_off}"
        ),
        short_text="Welcome back {first_name}! Your next {top_favorite} is on us.",
    ),
    (ActivityTag.DORMANT, ActivityTag.ACTIVE): MessageTemplate(
        subject="So good to have you back, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "It's been too long! Thank you for coming back to {restaurant}. "
            "Enjoy {discount}% off your next visit.\n\n"
            "Warm regards,\n{sign_off}"
        ),
        short_text="Great to see you again {first_name}! {discount}% off your next visit.",
    ),
}

BEHAVIOR_TEMPLATES: Dict[BehaviorTag, MessageTemplate] = {
    BehaviorTag.COMBO_BUYER: MessageTemplate(
        subject="New combos just for you, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "You love a good combo, so we've put together new meal deals at {restaurant}. "
            "Try one on your next visit with {discount}% off.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! New combo deals are here, {discount}% off your next one.",
    ),
    BehaviorTag.CATEGORY_LOYALIST: MessageTemplate(
        subject="More {category} for you, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "We know {category} is your favourite, so you're the first to hear about our new additions. "
            "Come taste them soon.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! New {category} just landed at {restaurant}.",
    ),
    BehaviorTag.LARGE_PARTY: MessageTemplate(
        subject="Bring everyone along, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Our sharing platters and family meals are made for groups like yours. "
            "Book a table for your next get-together and enjoy {discount}% off.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Family platters are {discount}% off for your next group visit.",
    ),
    BehaviorTag.WEEKEND_REGULAR: MessageTemplate(
        subject="Your weekend table is ready, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Weekends aren't the same without you. Reserve your favourite spot this weekend "
            "and we'll have {top_favorite} ready.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Your weekend table at {restaurant} is waiting.",
    ),
    BehaviorTag.LUNCH_REGULAR: MessageTemplate(
        subject="Lunch specials for you, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Our new lunch specials are quick, fresh and ready when you are. "
            "Enjoy {discount}% off lunch this week.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Lunch specials are {discount}% off this week.",
    ),
    BehaviorTag.DINNER_REGULAR: MessageTemplate(
        subject="Dinner is served, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Our chef has new dinner specials on the menu. Join us this evening and "
            "pair them with your favourite {top_favorite}.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! New dinner specials tonight at {restaurant}.",
    ),
    BehaviorTag.PRICE_SENSITIVE: MessageTemplate(
        subject="Today's best deals, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "Our budget-friendly daily deals are back. Enjoy {discount}% off your next order.\n\n"
            "Best regards,\n{sign_off}"
        ),
        short_text="Hi {first_name}! Daily deals: {discount}% off your next order.",
    ),
    BehaviorTag.PREMIUM_SEEKER: MessageTemplate(
        subject="An exclusive tasting for you, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "We'd be delighted to host you for an exclusive tasting of our chef's premium creations. "
            "Reply to reserve your seat.\n\n"
            "Kind regards,\n{sign_off}"
        ),
        short_text="{first_name}, you're invited to an exclusive chef's tasting at {restaurant}.",
    ),
    BehaviorTag.FREQUENT_VISITOR: MessageTemplate(
        subject="Thank you for being a regular, {first_name}",
        body=(
            "Dear {first_name},\n\n"
            "You've become one of our regulars, and we're grateful. "
            "Your next {top_favorite} is on the house.\n\n"
            "Warm regards,\n{sign_off}"
        ),
        short_text="Thanks for being a regular, {first_name}! Your next {top_favorite} is on us.",
    ),
}


def _require_exhaustive(table: Mapping, members: Type[Enum]) -> None:
    missing = [member.value for member in members if member not in table]
    if missing:
        raise RuntimeError(f"No message template for {members.__name__} values: {missing}")


_require_exhaustive(SPEND_TEMPLATES, SpendTag)
_require_exhaustive(ACTIVITY_TEMPLATES, ActivityTag)
_require_exhaustive(BEHAVIOR_TEMPLATES, BehaviorTag)


# =============================================================================
# PERSONALIZATION
# =============================================================================

_BEHAVIOR_RECOMMENDATIONS = {
    BehaviorTag.COMBO_BUYER: ("combo meals", "value deals"),
    BehaviorTag.LARGE_PARTY: ("family platters", "sharing plates"),
    BehaviorTag.LUNCH_REGULAR: ("lunch specials", "quick bites"),
    BehaviorTag.DINNER_REGULAR: ("dinner specials", "premium dishes"),
    BehaviorTag.PRICE_SENSITIVE: ("daily deals", "budget options"),
    BehaviorTag.PREMIUM_SEEKER: ("chef specials", "premium dishes"),
    BehaviorTag.FREQUENT_VISITOR: ("new items", "seasonal specials"),
}


def _ranked(counter: Counter) -> Tuple[str, ...]:
    return tuple(name for name, _ in sorted(counter.items(), key=lambda kv: (-kv[1], kv[0])))


def _dedupe(items) -> Tuple[str, ...]:
    seen = []
    for item in items:
        if item not in seen:
            seen.append(item)
    return tuple(seen)


def build_personalization(customer: Customer) -> PersonalizationProfile:
    """
    Derive offer and tone preferences from a customer's tags and history.

    Args:
        customer: Tagged customer

    Returns:
        PersonalizationProfile
    """
    item_counts = Counter()
    category_counts = Counter()
    for order in customer.orders:
        for item in order.items:
            item_counts[item.name] += item.quantity
        for category in order.categories:
            category_counts[category] += 1

    recommended = []
    discount_sensitivity = "medium"
    message_tone = "casual"
    contact_time = "18:00"

    for tag in sort_behavior_tags(customer.behavior_tags):
        recommended.extend(_BEHAVIOR_RECOMMENDATIONS.get(tag, ()))
        if tag == BehaviorTag.LARGE_PARTY:
            message_tone = "enthusiastic"
        elif tag == BehaviorTag.WEEKEND_REGULAR:
            contact_time = "19:00"
        elif tag == BehaviorTag.LUNCH_REGULAR:
            contact_time = "11:30"
        elif tag == BehaviorTag.DINNER_REGULAR:
            contact_time = "18:30"
        elif tag == BehaviorTag.PRICE_SENSITIVE:
            discount_sensitivity = "high"
        elif tag == BehaviorTag.PREMIUM_SEEKER:
            discount_sensitivity = "low"
            message_tone = "formal"

    if customer.spend_tag == SpendTag.HIGH_SPENDER:
        message_tone = "formal"
        discount_sensitivity = "low"
        recommended.extend(("chef specials", "wine pairings"))
    elif customer.spend_tag == SpendTag.LOW_SPENDER:
        discount_sensitivity = "high"
        recommended.append("value meals")

    if customer.activity_tag in (ActivityTag.NEW_CUSTOMER, ActivityTag.INSUFFICIENT_DATA):
        message_tone = "enthusiastic"
        recommended.extend(("popular items", "signature dishes"))
    elif customer.activity_tag in (ActivityTag.AT_RISK, ActivityTag.DORMANT):
        discount_sensitivity = "high"
        recommended.extend(("comeback offers", "loyalty rewards"))

    return PersonalizationProfile(
        favorite_items=_ranked(item_counts),
        preferred_categories=_ranked(category_counts),
        recommended_items=_dedupe(recommended),
        discount_sensitivity=discount_sensitivity,
        message_tone=message_tone,
        optimal_contact_time=contact_time,
    )


# =============================================================================
# COMPOSITION
# =============================================================================

def _parse(enum_type: Type[E], value: Optional[str]) -> Optional[E]:
    if value is None:
        return None
    try:
        return enum_type(value)
    except ValueError:
        logger.debug("Unrecognised tag value", tag_type=enum_type.__name__, value=value)
        return None


def select_template(trigger: AutomationTrigger) -> MessageTemplate:
    """Template for a trigger's dimension and target tag"""
    if trigger.dimension == TagDimension.BEHAVIOR:
        gained = [tag for tag in (_parse(BehaviorTag, v) for v in trigger.gained_tags) if tag]
        if gained:
            return BEHAVIOR_TEMPLATES[sort_behavior_tags(gained)[0]]
        return GENERIC_TEMPLATE

    if trigger.dimension == TagDimension.ACTIVITY:
        new = _parse(ActivityTag, trigger.new_tag)
        if new is None:
            return GENERIC_TEMPLATE
        old = _parse(ActivityTag, trigger.old_tag)
        transition = ACTIVITY_TRANSITION_TEMPLATES.get((old, new)) if old else None
        return transition or ACTIVITY_TEMPLATES[new]

    if trigger.dimension == TagDimension.SPEND:
        new = _parse(SpendTag, trigger.new_tag)
        if new is None:
            return GENERIC_TEMPLATE
        return SPEND_TEMPLATES[new]

    return GENERIC_TEMPLATE


def _context(
    customer: Customer,
    profile: PersonalizationProfile,
    messaging: MessagingSettings,
) -> Dict[str, str]:
    favorites = profile.favorite_items[: messaging.favorite_items_shown]
    recommended = profile.recommended_items[:3]
    last_visit = customer.last_visit_date
    discount = messaging.high_discount if profile.discount_sensitivity == "high" else messaging.standard_discount

    return {
        "first_name": customer.first_name,
        "name": customer.name,
        "restaurant": messaging.restaurant_name,
        "sign_off": messaging.sign_off,
        "favorites": ", ".join(favorites) if favorites else "our signature dishes",
        "top_favorite": favorites[0] if favorites else "signature dish",
        "recommended": ", ".join(recommended) if recommended else "our signature dishes",
        "category": profile.preferred_categories[0] if profile.preferred_categories else "dishes",
        "last_visit": last_visit.strftime("%d %B %Y") if last_visit else "your last visit",
        "discount": str(discount),
        "dormant_discount": str(messaging.dormant_discount),
    }


def generate_message(
    trigger: AutomationTrigger,
    customer: Customer,
    messaging: Optional[MessagingSettings] = None,
) -> OutboundMessage:
    """
    Render the outreach message for a trigger.

    Args:
        trigger: Automation trigger to act on
        customer: Customer the trigger refers to
        messaging: Messaging settings, defaults to configured settings

    Returns:
        OutboundMessage with subject, body and short text
    """
    if trigger.customer_id != customer.customer_id:
        raise ValueError(
            f"Trigger {trigger.trigger_id} belongs to customer {trigger.customer_id}, "
            f"not {customer.customer_id}"
        )

    messaging = messaging or get_settings().messaging
    template = select_template(trigger)
    context = _context(customer, build_personalization(customer), messaging)

    return OutboundMessage(
        subject=template.subject.format(**context),
        body=template.body.format(**context),
        short_text=template.short_text.format(**context),
    )


def dispatch_trigger(
    trigger: AutomationTrigger,
    customer: Customer,
    sent_at: Optional[datetime] = None,
    messaging: Optional[MessagingSettings] = None,
) -> Tuple[AutomationTrigger, OutboundMessage]:
    """
    Compose the message for a pending trigger and mark it processed.

    Returns:
        (processed trigger, message)
    """
    if trigger.processed:
        raise ValueError(f"Trigger {trigger.trigger_id} is already processed")
    message = generate_message(trigger, customer, messaging)
    return trigger.mark_processed(sent_at), message
