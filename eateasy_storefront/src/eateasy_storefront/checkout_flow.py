from datetime import datetime
import chainlit as cl

from eateasy_storefront.fetch_apis.backend_client import (
    BackendError,
    get_pickup_options,
    get_pickup_slots,
    place_order,
)

EXIT_ACTION = dict(name="exit_checkout", label="❌ Exit Checkout", payload={"intent": "exit"})

# Text prompts for the customer details step, in the order they are asked
DETAIL_PROMPTS = [
    ("order_notes", "🍽️ What would you like to order? (dishes, quantities, allergies)"),
    ("name", "👤 May I have your name?"),
    ("email", "📧 Which email should we send the confirmation to?"),
    ("phone", "📞 And a phone number the restaurant can reach you on?"),
]


def display_date(iso_date: str) -> str:
    day = datetime.strptime(iso_date, "%Y-%m-%d")
    return day.strftime("%A %b ") + str(day.day)


class CheckoutFlow:
    """
    Deterministic pickup checkout for one chat session.
    Availability is decided by the backend; this flow only presents it.
    """

    def __init__(self, restaurant_id: str):
        self.restaurant_id = restaurant_id
        self.state = {}
        self.options = {}

    @property
    def awaiting(self):
        """Name of the detail the flow is waiting for as free text, if any."""
        return self.state.get("awaiting")

    def apply_defaults(self, options: dict):
        """Preselect the backend's default pickup unless the customer already chose."""
        self.options = options
        if self.state.get("explicit"):
            return
        default = options.get("default") or {}
        self.state["mode"] = default.get("mode", "scheduled")
        self.state["date"] = default.get("date")
        self.state["time"] = default.get("time")

    async def start(self):
        """Step 1: Load pickup options and show the default choice"""
        try:
            options = await get_pickup_options(self.restaurant_id)
        except BackendError as e:
            await cl.Message(content=e.message).send()
            return
        self.apply_defaults(options)

        if not options.get("hours_configured"):
            await cl.Message(content="⚠️ This restaurant is not taking pickup orders yet.").send()
            return
        if not options.get("asap_available") and not options.get("available_dates"):
            await cl.Message(content="⚠️ Sorry, there are no pickup times available in the next 7 days.").send()
            return

        if self.state["mode"] == "asap":
            summary = "⚡ Pickup **as soon as possible** is selected."
        elif self.state.get("date") and self.state.get("time"):
            summary = f"📅 Next available pickup: **{display_date(self.state['date'])} at {self.state['time']}**."
        else:
            summary = "📅 ASAP pickup is not available right now, please schedule a pickup."

        actions = []
        if options.get("asap_available"):
            actions.append(cl.Action(name="co_select_asap", label="⚡ ASAP", payload={"mode": "asap"}))
        if options.get("available_dates"):
            actions.append(cl.Action(name="co_schedule", label="📅 Schedule for later", payload={"mode": "scheduled"}))
        if self.state["mode"] == "asap" or self.state.get("time"):
            actions.append(cl.Action(name="co_keep_default", label="✅ Continue", payload={}))
        actions.append(cl.Action(**EXIT_ACTION))

        await cl.Message(content=f"🛍️ **Pickup Order**\n\n{summary}", actions=actions).send()

    async def keep_default(self):
        await self.ask_details()

    async def select_asap(self):
        self.state.update(mode="asap", date=None, time=None, explicit=True)
        await self.ask_details()

    async def schedule(self):
        """Step 2: Show open dates"""
        dates = self.options.get("available_dates", [])
        await cl.Message(
            content="📅 Please select your pickup date:",
            actions=[
                *[
                    cl.Action(name="co_select_date", label=display_date(d), payload={"date": d})
                    for d in dates
                ],
                cl.Action(**EXIT_ACTION),
            ],
        ).send()

    async def select_date(self, date: str):
        """Step 3: Fetch time slots for the chosen date"""
        try:
            slots = await get_pickup_slots(self.restaurant_id, date)
        except BackendError as e:
            await cl.Message(content=e.message).send()
            return

        if not slots:
            await cl.Message(content=f"⚠️ No pickup times left on {display_date(date)}. Please choose another date.").send()
            await self.schedule()
            return

        self.state.update(mode="scheduled", date=date, time=None, explicit=True)
        await cl.Message(
            content=f"🕒 Available pickup times on {display_date(date)}:",
            actions=[
                *[
                    cl.Action(name="co_select_time", label=t, payload={"time": t, "date": date})
                    for t in slots
                ],
                cl.Action(**EXIT_ACTION),
            ],
        ).send()

    async def select_time(self, time: str, date: str | None = None):
        """Step 4: Remember the slot and collect customer details"""
        date = date or self.state.get("date")
        if not date:
            await cl.Message(content="⚠️ Checkout state lost. Let's start again.").send()
            await self.start()
            return
        # A time button belongs to the date it was listed for
        self.state.update(mode="scheduled", date=date, time=time, explicit=True)
        await self.ask_details()

    async def ask_details(self):
        for key, prompt in DETAIL_PROMPTS:
            if key not in self.state:
                self.state["awaiting"] = key
                await cl.Message(content=prompt, actions=[cl.Action(**EXIT_ACTION)]).send()
                return
        self.state.pop("awaiting", None)
        await self.finalize()

    async def provide_detail(self, value: str):
        key = self.awaiting
        if not key:
            return
        value = value.strip()
        if not value:
            await cl.Message(content="⚠️ This field is required.").send()
            return
        self.state[key] = value
        await self.ask_details()

    def order_payload(self) -> dict:
        if self.state.get("mode") == "asap":
            pickup = {"mode": "asap"}
        else:
            pickup = {"mode": "scheduled", "date": self.state.get("date"), "time": self.state.get("time")}
        return {
            "customer": {
                "name": self.state["name"],
                "email": self.state["email"],
                "phone": self.state["phone"],
            },
            # The free-text request travels as a single line item for the kitchen
            "items": [{"itemName": self.state["order_notes"], "quantity": 1, "itemPrice": 0}],
            "total": 0,
            "pickup": pickup,
        }

    async def finalize(self):
        """Step 5: Submit; the backend re-checks the pickup before saving"""
        try:
            order = await place_order(self.restaurant_id, self.order_payload())
        except BackendError as e:
            await cl.Message(content=e.message).send()
            if e.kind:
                # Pickup choice went stale: ask for a new one, keep the customer details
                for key in ("mode", "date", "time", "explicit"):
                    self.state.pop(key, None)
                await self.start()
            return

        if order.get("pickup_option") == "asap":
            when = "as soon as possible"
        else:
            when = f"{display_date(order['pickup_date'])} at {order['pickup_time']}"

        await cl.Message(
            content=(
                "🎉 **Order Placed!**\n\n"
                f"📋 Order Summary\n"
                f"- Order: {order['id']}\n"
                f"- Pickup: {when}\n"
                f"- Name: {order['customer_name']}\n\n"
                "✅ You'll receive an email as soon as the restaurant confirms your order."
            ),
            actions=[
                cl.Action(name="order", label="🛍️ Place Another Order", payload={"intent": "order"}),
                cl.Action(name="hours", label="⏰ Opening Hours", payload={"intent": "hours"}),
            ],
        ).send()

        self.state.clear()
