from __future__ import annotations
from html import escape
from typing import Optional

from jinja2 import Environment, DictLoader, select_autoescape

from ..model.db import Inquiry, Order, Suggestion
from .dispatcher import EventKind, Notification

STORE_NAME = "Trip STORE"

# ----------------------------
# Jinja2 in-memory templates (no files needed)
# ----------------------------
TEMPLATES = {
    "layout.html": r"""
    <div dir="rtl" style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: {{ accent|default('#ffa726') }};">{{ title }}</h2>
      {% block body %}{% endblock %}
      <p style="color:#888;font-size:12px;margin-top:24px;">{{ store }}</p>
    </div>
    """,
    "new_order.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <p><strong>رقم الطلب:</strong> #{{ o.id }}</p>
      <p><strong>الاسم:</strong> {{ o.name }}</p>
      <p><strong>ID اللاعب:</strong> {{ o.player_id }}</p>
      <p><strong>البريد:</strong> {{ o.email }}</p>
      {% if o.uc_amount %}
      <p><strong>الشدات:</strong> {{ o.uc_amount }}</p>
      {% else %}
      <p><strong>الحزمة:</strong> {{ o.bundle }}</p>
      {% endif %}
      <p><strong>المبلغ:</strong> {{ o.total_amount }}</p>
      <p><strong>رقم التحويل:</strong> {{ o.transaction_id }}</p>
      <p><strong>سكرين شوت:</strong> {{ "مرفق" if o.screenshot else "لا يوجد" }}</p>
    {% endblock %}
    """,
    "status_change.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <p>مرحباً {{ o.name }}،</p>
      <p>تم تحديث حالة طلبك رقم <strong>#{{ o.id }}</strong> إلى:</p>
      <div style="background:#f5f5f5;padding:10px;border-right:3px solid #2196F3;">{{ o.status }}</div>
    {% endblock %}
    """,
    "new_inquiry.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <p><strong>الاسم:</strong> {{ i.name or "-" }}</p>
      <p><strong>البريد:</strong> {{ i.email }}</p>
      <p><strong>الرسالة:</strong></p>
      <div style="background:#f5f5f5;padding:10px;border-right:3px solid #ffa726;">{{ i.message }}</div>
    {% endblock %}
    """,
    "new_suggestion.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <p><strong>الاسم:</strong> {{ s.name }}</p>
      <p><strong>التواصل:</strong> {{ s.contact }}</p>
      <p><strong>الاقتراح:</strong></p>
      <div style="background:#f5f5f5;padding:10px;border-right:3px solid #25D366;">{{ s.message }}</div>
    {% endblock %}
    """,
    "admin_reply.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <p><strong>استفسارك:</strong></p>
      <div style="background:#f5f5f5;padding:10px;border-right:3px solid #ffa726;">{{ message }}</div>
      <h3 style="color: #2196F3;">رد الفريق:</h3>
      <div style="background:#f5f5f5;padding:10px;border-right:3px solid #2196F3;">{{ reply }}</div>
    {% endblock %}
    """,
    "broadcast.html": r"""
    {% extends "layout.html" %}
    {% block body %}
      <div style="background:#f5f5f5;padding:15px;border-right:3px solid #2196F3;">
        {% for line in message.splitlines() %}{{ line }}{% if not loop.last %}<br>{% endif %}{% endfor %}
      </div>
    {% endblock %}
    """,
}

env = Environment(
    loader=DictLoader(TEMPLATES), autoescape=select_autoescape(["html"])
)


def render(name: str, **ctx) -> str:
    tpl = env.get_template(name)
    return tpl.render(store=STORE_NAME, **ctx)


def _telegram(title: str, *lines: str) -> str:
    body = "\n".join(lines)
    return f"<b>{escape(title)}</b>\n{body}"


def _kv(label: str, value: Optional[object]) -> str:
    return f"{escape(label)}: <code>{escape(str(value or '-'))}</code>"


# ----------------------------
# Event builders
# ----------------------------
def new_order(o: Order) -> Notification:
    title = f"🧾 طلب جديد #{o.id}"
    purchase = (
        _kv("الشدات", o.uc_amount) if o.uc_amount
        else _kv("الحزمة", o.bundle)
    )
    return Notification(
        kind=EventKind.NEW_ORDER,
        subject=f"طلب جديد #{o.id}",
        html=render("new_order.html", title="طلب جديد", o=o),
        text=_telegram(
            title,
            _kv("الاسم", o.name),
            _kv("ID اللاعب", o.player_id),
            _kv("البريد", o.email),
            purchase,
            _kv("المبلغ", o.total_amount),
            _kv("رقم التحويل", o.transaction_id),
        ),
    )


def status_changed(o: Order) -> Notification:
    # email goes to the customer, chat message to staff
    return Notification(
        kind=EventKind.STATUS_CHANGE,
        subject=f"تحديث حالة طلبك #{o.id}",
        html=render("status_change.html", title="تحديث حالة الطلب",
                    accent="#2196F3", o=o),
        text=_telegram(
            f"🔄 تحديث حالة الطلب #{o.id}",
            _kv("الحالة", o.status),
            _kv("البريد", o.email),
        ),
        recipient=o.email,
    )


def new_inquiry(i: Inquiry) -> Notification:
    return Notification(
        kind=EventKind.NEW_INQUIRY,
        subject="استفسار جديد",
        html=render("new_inquiry.html", title="استفسار جديد", i=i),
        text=_telegram(
            "❓ استفسار جديد",
            _kv("الاسم", i.name),
            _kv("البريد", i.email),
            escape(i.message),
        ),
    )


def new_suggestion(s: Suggestion) -> Notification:
    return Notification(
        kind=EventKind.NEW_SUGGESTION,
        subject="اقتراح جديد",
        html=render("new_suggestion.html", title="اقتراح جديد",
                    accent="#25D366", s=s),
        text=_telegram(
            "💡 اقتراح جديد",
            _kv("الاسم", s.name),
            _kv("التواصل", s.contact),
            escape(s.message),
        ),
    )


def admin_reply(to: str, message: str, reply: str) -> Notification:
    return Notification(
        kind=EventKind.ADMIN_REPLY,
        subject="رد على استفسارك",
        html=render("admin_reply.html", title="شكراً لتواصلك معنا",
                    message=message, reply=reply),
        recipient=to,
    )


def broadcast(to: str, subject: str, message: str) -> Notification:
    return Notification(
        kind=EventKind.ADMIN_BROADCAST,
        subject=subject,
        html=render("broadcast.html", title=subject, message=message),
        recipient=to,
    )
