from .checkout_flow import CheckoutFlow
from .fetch_apis.backend_client import BackendError, get_opening_hours
from .opening_hours import format_opening_hours
import chainlit as cl, os

os.environ["CHAINLIT_DISABLE_PERSISTENCE"] = "true"  # Stateless storefront, orders live in the backend

RESTAURANT_ID = os.getenv("RESTAURANT_ID", "")

if not RESTAURANT_ID:
    print("Storefront: RESTAURANT_ID is NOT set. Checkout will fail until it is configured.")


def get_checkout() -> CheckoutFlow:
    """One checkout flow per chat session."""
    flow = cl.user_session.get("checkout")
    if flow is None:
        flow = CheckoutFlow(RESTAURANT_ID)
        cl.user_session.set("checkout", flow)
    return flow


async def send_followup_buttons(content: str):
    """Reusable helper to show standard follow-up actions"""
    await cl.Message(
        content=content,
        actions=[
            cl.Action(name="order", label="🛍️ Order for Pickup", payload={"intent": "order"}),
            cl.Action(name="hours", label="⏰ Opening Hours", payload={"intent": "hours"}),
        ],
    ).send()


@cl.on_chat_start
async def on_chat_start():
    get_checkout()
    await send_followup_buttons(
        "🍽️ **Welcome to AI Eat Easy!**\n\n"
        "Order ahead and pick up your food as soon as possible or at a time that suits you."
    )


@cl.on_message
async def on_message(message: cl.Message):
    checkout = get_checkout()

    # In the middle of checkout and expecting a typed answer
    if checkout.awaiting:
        await checkout.provide_detail(message.content)
        return

    await send_followup_buttons("✨ What would you like to do?")

# ---------- ACTION BUTTON CALLBACKS ----------

@cl.action_callback("order")
async def order_action(action: cl.Action):
    await get_checkout().start()

@cl.action_callback("hours")
async def hours_action(action: cl.Action):
    try:
        hours = await get_opening_hours(RESTAURANT_ID)
    except BackendError as e:
        await cl.Message(content=e.message).send()
        return
    await cl.Message(content=format_opening_hours(hours)).send()
    await send_followup_buttons("✨ What would you like to do next?")

@cl.action_callback("co_keep_default")
async def co_keep_default(action: cl.Action):
    await get_checkout().keep_default()

@cl.action_callback("co_select_asap")
async def co_select_asap(action: cl.Action):
    await get_checkout().select_asap()

@cl.action_callback("co_schedule")
async def co_schedule(action: cl.Action):
    await get_checkout().schedule()

@cl.action_callback("co_select_date")
async def co_select_date(action: cl.Action):
    await get_checkout().select_date(action.payload.get("date"))

@cl.action_callback("co_select_time")
async def co_select_time(action: cl.Action):
    await get_checkout().select_time(action.payload.get("time"), action.payload.get("date"))

@cl.action_callback("exit_checkout")
async def exit_checkout(action: cl.Action):
    get_checkout().state.clear()
    await send_followup_buttons("❌ Checkout cancelled.")
