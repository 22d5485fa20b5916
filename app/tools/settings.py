import logging
from datetime import datetime
from typing import Optional

from app.core.blocks import (
    SHORT_DESCRIPTION_MAX,
    BillingPanelBlock,
    DetailField,
    DetailPanelBlock,
    StatusBlock,
    SuggestionsBlock,
    client_action,
)
from app.core.records import GOAL_LABELS
from app.tools.context import ToolContext, ToolResult
from app.tools.helpers import unique_prompts
from app.tools.schemas import NoArgs, SetSoundArgs, SetWeightUnitArgs, UpdatePreferencesArgs

logger = logging.getLogger("uvicorn.error")

NOT_SET = "Not set"
NO_CHANGE = "No change"


def format_goals(goals: list[str]) -> str:
    if not goals:
        return NOT_SET
    return ", ".join(GOAL_LABELS.get(goal, goal) for goal in goals)


def _clip(value: Optional[str]) -> str:
    return (value or NOT_SET)[:SHORT_DESCRIPTION_MAX]


def format_period(period_end: Optional[datetime]) -> Optional[str]:
    if period_end is None:
        return None
    return f"{period_end:%b} {period_end.day}, {period_end.year}"


async def _persist_profile(ctx: ToolContext, **changes) -> bool:
    # The client action is emitted whether or not the profile write succeeds.
    try:
        await ctx.store.patch_user(**changes)
    except Exception as exc:
        logger.warning("coach profile update failed user_id=%s fields=%s error=%r", ctx.user_id, list(changes), exc)
        return False
    return True


async def set_weight_unit(args: SetWeightUnitArgs, ctx: ToolContext) -> ToolResult:
    saved = await _persist_profile(ctx, weight_unit=args.unit)
    return ToolResult(
        summary=f"Set weight unit to {args.unit}.",
        blocks=[
            StatusBlock(
                tone="success",
                title=f"Weight unit set to {args.unit.upper()}",
                description="Applied for future logging." if saved else "Applied locally for future logging.",
            ),
            client_action("set_weight_unit", {"unit": args.unit}),
            SuggestionsBlock(prompts=["10 pushups", "show today's summary"]),
        ],
        output_for_model={"status": "ok", "unit": args.unit},
    )


async def set_sound(args: SetSoundArgs, ctx: ToolContext) -> ToolResult:
    saved = await _persist_profile(ctx, sound_enabled=args.enabled)
    state = "on" if args.enabled else "off"
    return ToolResult(
        summary=f"Set tactile sounds {state}.",
        blocks=[
            StatusBlock(
                tone="success",
                title=f"Tactile sounds {'enabled' if args.enabled else 'disabled'}",
                description="Saved to your profile." if saved else "Applied locally.",
            ),
            client_action("set_sound", {"enabled": args.enabled}),
        ],
        output_for_model={"status": "ok", "enabled": args.enabled},
    )


async def get_settings_overview(args: NoArgs, ctx: ToolContext) -> ToolResult:
    user = await ctx.store.get_user()
    subscription = await ctx.insights.get_subscription_status()
    has_customer = bool(user.billing_customer_id)

    return ToolResult(
        summary="Prepared settings overview.",
        blocks=[
            DetailPanelBlock(
                title="Training preferences",
                fields=[
                    DetailField(label="Goals", value=format_goals(user.goals), emphasis=True),
                    DetailField(label="Custom goal", value=_clip(user.custom_goal)),
                    DetailField(label="Training split", value=_clip(user.training_split)),
                    DetailField(label="Coach notes", value=_clip(user.coach_notes)),
                ],
            ),
            BillingPanelBlock(
                status=subscription.status,
                title="Subscription",
                subtitle=(
                    "Your account currently has access."
                    if subscription.has_access
                    else "Upgrade to keep full access."
                ),
                trial_days_remaining=subscription.trial_days_remaining,
                period_end=format_period(subscription.period_end or user.subscription_period_end),
                cta_label="Manage billing" if has_customer else "Upgrade plan",
                cta_action="open_billing_portal" if has_customer else "open_checkout",
            ),
            SuggestionsBlock(
                prompts=unique_prompts(
                    [
                        "update goals to build_muscle and get_stronger",
                        "set training split to push pull legs",
                        "set coach notes to prioritize shoulder stability",
                        "show analytics overview",
                    ]
                )
            ),
        ],
        output_for_model={
            "status": "ok",
            "subscription_status": subscription.status,
            "has_access": subscription.has_access,
            "billing_customer": has_customer,
            "goals": list(user.goals),
        },
    )


async def update_preferences(args: UpdatePreferencesArgs, ctx: ToolContext) -> ToolResult:
    changes = args.model_dump(exclude_none=True)
    if not changes:
        return ToolResult(
            summary="No preference fields provided.",
            blocks=[
                StatusBlock(
                    tone="info",
                    title="Nothing to update",
                    description="Provide one or more preference fields to update.",
                )
            ],
            output_for_model={"status": "ok", "updated": False},
        )

    await ctx.store.patch_user(**changes)

    goals_label = format_goals(args.goals) if args.goals else None

    def field(label: str, value: Optional[str]) -> DetailField:
        return DetailField(label=label, value=value or NO_CHANGE, emphasis=value is not None)

    return ToolResult(
        summary="Updated preferences.",
        blocks=[
            DetailPanelBlock(
                title="Preferences updated",
                fields=[
                    field("Goals", goals_label),
                    field("Custom goal", args.custom_goal),
                    field("Training split", args.training_split),
                    field("Coach notes", args.coach_notes),
                ],
            )
        ],
        output_for_model={
            "status": "ok",
            "updated": True,
            "goals": args.goals,
            "custom_goal": args.custom_goal,
            "training_split": args.training_split,
            "coach_notes": args.coach_notes,
        },
    )


async def open_billing(args: NoArgs, ctx: ToolContext) -> ToolResult:
    user = await ctx.store.get_user()
    if user.billing_customer_id:
        return ToolResult(
            summary="Opening billing portal.",
            blocks=[
                StatusBlock(
                    tone="info",
                    title="Opening billing portal",
                    description="Manage your plan, payment method and invoices.",
                ),
                client_action("open_billing_portal", {"mode": "portal"}),
            ],
            output_for_model={"status": "ok", "mode": "portal"},
        )
    return ToolResult(
        summary="Opening checkout.",
        blocks=[
            StatusBlock(
                tone="info",
                title="Opening checkout",
                description="Pick a plan to keep full access after your trial.",
            ),
            client_action("open_checkout", {"mode": "checkout"}),
        ],
        output_for_model={"status": "ok", "mode": "checkout"},
    )
