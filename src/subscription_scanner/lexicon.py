"""Language-keyed keyword tables.

Pure data plus a phrase matcher. Every table maps a language code to a
tuple of lowercase phrases; the ``global`` entry applies to every
language. Classification only ever consults the detected language's
entries and the global ones.
"""

from __future__ import annotations

import re
from functools import lru_cache
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

GLOBAL = "global"

SUPPORTED_LANGUAGES = ("en", "fr", "es", "de", "ar", "ja")

# Hard exclusions: onboarding, account/security, marketing, shipping,
# refunds, trial starts without a charge, failed payments, one-off buys.
EXCLUSION_PHRASES: Mapping[str, tuple[str, ...]] = {
    GLOBAL: ("newsletter", "webinar"),
    "en": (
        "welcome to",
        "welcome email",
        "account created",
        "password reset",
        "reset your password",
        "security alert",
        "login attempt",
        "verification code",
        "verify your email",
        "promotional offer",
        "special offer",
        "discount code",
        "limited time offer",
        "order confirmation",
        "shipping confirmation",
        "delivery confirmation",
        "has shipped",
        "order shipped",
        "out for delivery",
        "package delivered",
        "tracking number",
        "refund processed",
        "refund confirmation",
        "refund issued",
        "has been refunded",
        "free trial started",
        "start your free trial",
        "your free trial has started",
        "your trial has begun",
        "payment failed",
        "payment declined",
        "update your payment method",
        "one-time purchase",
        "single purchase",
        "gift card",
        "in-app purchase",
    ),
    "fr": (
        "bienvenue",
        "réinitialiser votre mot de passe",
        "réinitialisation du mot de passe",
        "code de vérification",
        "alerte de sécurité",
        "offre spéciale",
        "code promo",
        "confirmation de commande",
        "a été expédié",
        "expédition",
        "numéro de suivi",
        "livraison prévue",
        "remboursement",
        "votre essai gratuit a commencé",
        "commencez votre essai gratuit",
        "échec du paiement",
        "paiement refusé",
        "carte cadeau",
        "achat unique",
    ),
    "es": (
        "bienvenido",
        "bienvenida",
        "restablecer tu contraseña",
        "restablecer contraseña",
        "código de verificación",
        "alerta de seguridad",
        "oferta especial",
        "código de descuento",
        "confirmación de pedido",
        "ha sido enviado",
        "número de seguimiento",
        "reembolso",
        "tu prueba gratuita ha comenzado",
        "comienza tu prueba gratuita",
        "pago fallido",
        "pago rechazado",
        "tarjeta regalo",
        "compra única",
    ),
    "de": (
        "willkommen",
        "passwort zurücksetzen",
        "bestätigungscode",
        "sicherheitswarnung",
        "sonderangebot",
        "gutscheincode",
        "bestellbestätigung",
        "versandbestätigung",
        "wurde versandt",
        "sendungsnummer",
        "rückerstattung",
        "ihre kostenlose testphase hat begonnen",
        "starten sie ihre kostenlose testphase",
        "zahlung fehlgeschlagen",
        "geschenkkarte",
        "einmalkauf",
    ),
    "ar": (
        "مرحبا بك",
        "أهلا بك",
        "إعادة تعيين كلمة المرور",
        "رمز التحقق",
        "تنبيه أمني",
        "عرض خاص",
        "رمز الخصم",
        "تأكيد الطلب",
        "تم شحن",
        "رقم التتبع",
        "استرداد",
        "بدأت الفترة التجريبية",
        "ابدأ تجربتك المجانية",
        "فشل الدفع",
        "بطاقة هدية",
    ),
    "ja": (
        "ようこそ",
        "パスワードの再設定",
        "確認コード",
        "キャンペーン",
        "クーポン",
        "ご注文の確認",
        "発送しました",
        "追跡番号",
        "返金",
        "無料体験が始まりました",
        "お支払いに失敗",
        "ギフトカード",
    ),
}

# Receipt or payment-confirmation phrases.
RECEIPT_PHRASES: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": (
        "payment receipt",
        "billing receipt",
        "subscription receipt",
        "invoice receipt",
        "renewal receipt",
        "transaction receipt",
        "your receipt",
        "receipt for your payment",
        "payment confirmation",
        "billing confirmation",
        "charge confirmation",
        "payment successful",
        "payment processed",
        "payment received",
        "thanks for your payment",
        "thank you for your payment",
    ),
    "fr": (
        "reçu de paiement",
        "votre reçu",
        "reçu",
        "confirmation de paiement",
        "paiement confirmé",
        "paiement réussi",
        "paiement reçu",
        "votre facture",
        "facture",
    ),
    "es": (
        "recibo de pago",
        "tu recibo",
        "recibo",
        "confirmación de pago",
        "pago confirmado",
        "pago realizado",
        "pago recibido",
        "tu factura",
        "factura",
    ),
    "de": (
        "zahlungsbestätigung",
        "zahlungseingang",
        "ihre quittung",
        "quittung",
        "ihre rechnung",
        "rechnung",
        "zahlungsbeleg",
    ),
    "ar": (
        "تأكيد الدفع",
        "تم الدفع بنجاح",
        "إيصال",
        "وصل الدفع",
        "فاتورة",
    ),
    "ja": (
        "領収書",
        "お支払い完了",
        "お支払いの確認",
        "決済完了",
        "ご請求",
    ),
}

# Phrases that indicate an actual monetary transaction.
FINANCIAL_PHRASES: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": (
        "amount charged",
        "total charged",
        "amount paid",
        "total paid",
        "charged to your",
        "billed to your",
        "payment of",
        "charge of",
        "subscription fee",
        "monthly charge",
        "annual charge",
        "you paid",
        "we charged",
        "amount",
        "total",
        "charged",
        "billed",
    ),
    "fr": (
        "montant",
        "montant payé",
        "montant total",
        "total",
        "débité",
        "prélevé",
        "prélèvement",
        "payé",
        "facturé",
    ),
    "es": (
        "importe",
        "monto",
        "total",
        "cobrado",
        "cargo",
        "pagado",
        "facturado",
    ),
    "de": (
        "betrag",
        "gesamtbetrag",
        "gesamt",
        "belastet",
        "abgebucht",
        "bezahlt",
        "berechnet",
    ),
    "ar": (
        "المبلغ",
        "مبلغ",
        "الإجمالي",
        "المجموع",
        "المدفوع",
        "تم خصم",
        "الدفع",
    ),
    "ja": (
        "金額",
        "合計",
        "請求額",
        "お支払い金額",
        "決済",
    ),
}

# Recurring-billing context.
SUBSCRIPTION_TERMS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": (
        "subscription",
        "recurring",
        "monthly",
        "annual",
        "yearly",
        "plan",
        "membership",
        "renewal",
        "renewed",
        "renews",
    ),
    "fr": (
        "abonnement",
        "renouvellement",
        "renouvelé",
        "mensuel",
        "annuel",
        "forfait",
        "formule",
        "adhésion",
    ),
    "es": (
        "suscripción",
        "renovación",
        "renovado",
        "mensual",
        "anual",
        "plan",
        "membresía",
    ),
    "de": (
        "abonnement",
        "abo",
        "mitgliedschaft",
        "verlängerung",
        "verlängert",
        "monatlich",
        "jährlich",
        "tarif",
    ),
    "ar": (
        "اشتراك",
        "الاشتراك",
        "تجديد",
        "شهري",
        "سنوي",
        "العضوية",
        "باقة",
    ),
    "ja": (
        "サブスクリプション",
        "定期",
        "月額",
        "年額",
        "プラン",
        "会員",
        "更新",
    ),
}

TRIAL_TERMS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": ("free trial", "trial"),
    "fr": ("essai gratuit", "période d'essai", "essai"),
    "es": ("prueba gratuita", "periodo de prueba"),
    "de": ("testphase", "probeabo", "probezeitraum"),
    "ar": ("تجريبي", "الفترة التجريبية"),
    "ja": ("無料体験", "お試し"),
}

CANCELLATION_TERMS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": ("cancelled", "canceled", "cancellation"),
    "fr": ("annulé", "résilié", "résiliation"),
    "es": ("cancelado", "cancelada", "cancelación"),
    "de": ("gekündigt", "kündigung", "storniert"),
    "ar": ("ملغى", "إلغاء", "تم إلغاء"),
    "ja": ("解約", "キャンセル"),
}

YEARLY_TERMS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": ("annual", "annually", "yearly", "per year", "/year", "/yr"),
    "fr": ("annuel", "annuelle", "par an", "/an"),
    "es": ("anual", "al año", "por año", "/año"),
    "de": ("jährlich", "jahresabo", "pro jahr", "/jahr"),
    "ar": ("سنوي", "سنويا", "سنة"),
    "ja": ("年額", "年間"),
}

WEEKLY_TERMS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": ("weekly", "per week", "/week", "/wk"),
    "fr": ("hebdomadaire", "par semaine"),
    "es": ("semanal", "por semana"),
    "de": ("wöchentlich", "pro woche"),
    "ar": ("أسبوعي", "أسبوعيا"),
    "ja": ("週額", "毎週"),
}

# Phrases that introduce an explicit next-charge date.
NEXT_PAYMENT_PHRASES: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": (
        "next payment date",
        "next billing date",
        "next payment",
        "next billing",
        "next charge",
        "renews on",
        "renewal date",
    ),
    "fr": ("prochain prélèvement", "prochaine facture", "prochain paiement"),
    "es": ("próximo cobro", "próximo pago", "próxima factura"),
    "de": ("nächste zahlung", "nächste abbuchung", "nächste rechnung"),
    "ar": ("الدفعة التالية", "تاريخ التجديد"),
    "ja": ("次回請求日", "次回のお支払い"),
}

# Numeric date layouts, in order of preference. Only US English puts the
# month first.
NUMERIC_DATE_FORMATS: Mapping[str, tuple[str, ...]] = {
    "en": ("%m/%d/%Y",),
    "fr": ("%d/%m/%Y", "%d.%m.%Y"),
    "es": ("%d/%m/%Y",),
    "de": ("%d.%m.%Y", "%d/%m/%Y"),
    "ar": ("%d/%m/%Y",),
    "ja": ("%Y/%m/%d",),
}

# Financial-context words that qualify an adjacent amount.
AMOUNT_CONTEXT_WORDS: Mapping[str, tuple[str, ...]] = {
    GLOBAL: (),
    "en": ("total", "amount", "charged", "paid", "billed", "price", "payment of"),
    "fr": ("total", "montant", "débité", "prélevé", "payé", "prix"),
    "es": ("total", "importe", "monto", "cobrado", "cargo", "pagado", "precio"),
    "de": ("gesamt", "betrag", "belastet", "abgebucht", "bezahlt", "preis"),
    "ar": ("المبلغ", "مبلغ", "الإجمالي", "المجموع", "المدفوع", "خصم"),
    "ja": ("金額", "合計", "請求額", "お支払い"),
}

# Receipt phrases used as mailbox search terms, per language.
SEARCH_PHRASES: Mapping[str, tuple[str, ...]] = {
    "en": (
        "payment receipt",
        "billing receipt",
        "subscription receipt",
        "payment confirmation",
        "payment successful",
        "payment processed",
        "charge confirmation",
    ),
    "fr": ("reçu de paiement", "confirmation de paiement", "facture abonnement"),
    "es": ("recibo de pago", "confirmación de pago"),
    "de": ("zahlungsbestätigung", "rechnung abonnement"),
    "ar": ("تأكيد الدفع", "فاتورة الاشتراك"),
    "ja": ("領収書",),
}


def phrases_for(
    table: Mapping[str, tuple[str, ...]], language: str
) -> tuple[str, ...]:
    """Return the language's phrases followed by the global ones."""
    return table.get(language, ()) + table.get(GLOBAL, ())


@lru_cache(maxsize=2048)
def _phrase_pattern(phrase: str) -> re.Pattern[str]:
    escaped = re.escape(phrase)
    if all(ord(ch) < 0x250 for ch in phrase):
        # Latin scripts: whole-word match so "plan" does not hit "explanation".
        head = r"(?<!\w)" if phrase[:1].isalnum() else ""
        tail = r"(?!\w)" if phrase[-1:].isalnum() else ""
        return re.compile(f"{head}{escaped}{tail}")
    # Arabic attaches clitics to words and Japanese has no spaces.
    return re.compile(escaped)


def contains_phrase(text: str, phrase: str) -> bool:
    """True when ``phrase`` occurs in lowercase ``text``."""
    return _phrase_pattern(phrase).search(text) is not None


def first_match(text: str, phrases: tuple[str, ...]) -> str | None:
    """Return the first phrase found in ``text``, or None."""
    for phrase in phrases:
        if contains_phrase(text, phrase):
            return phrase
    return None
