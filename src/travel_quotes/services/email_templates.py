"""Subjects and HTML bodies of the lifecycle emails.

Every interpolated value is HTML-escaped; callers pass raw text.
"""

from datetime import date
from decimal import Decimal
from html import escape

from attrs import frozen
from beartype import beartype

_PARAGRAPH = '<p style="color:#334155;font-size:15px;line-height:1.7;">{}</p>'
_HEADING = '<h2 style="margin:0 0 16px;color:{color};font-size:22px;">{text}</h2>'
_NAVY = "#1B2D4F"
_RED = "#C41E2F"
_GREEN = "#16a34a"


@frozen
class EmailContent:
    """Rendered subject and HTML body."""

    subject: str
    html: str


def _layout(brand: str, body: str) -> str:
    return (
        '<!DOCTYPE html><html lang="it"><head><meta charset="utf-8" />'
        f"<title>{escape(brand)}</title></head>"
        '<body style="margin:0;padding:0;background-color:#f4f4f5;'
        'font-family:\'Segoe UI\',Tahoma,Geneva,Verdana,sans-serif;">'
        '<div style="max-width:600px;margin:24px auto;background:#ffffff;'
        'border-radius:8px;overflow:hidden;">'
        f'<div style="background-color:{_NAVY};padding:24px 32px;text-align:center;">'
        '<h1 style="margin:0;font-size:28px;color:#ffffff;">'
        f"{escape(brand)}</h1></div>"
        f'<div style="padding:32px;">{body}</div>'
        '<div style="background-color:#f8fafc;padding:24px 32px;font-size:11px;color:#94a3b8;">'
        "Questa email &egrave; stata inviata automaticamente.</div>"
        "</div></body></html>"
    )


def _heading(text: str, color: str = _NAVY) -> str:
    return _HEADING.format(color=color, text=escape(text))


def _greeting(agency_name: str) -> str:
    return _PARAGRAPH.format(f"Gentile <strong>{escape(agency_name)}</strong>,")


def _quoted(product_name: str) -> str:
    return f"<strong>&ldquo;{escape(product_name)}&rdquo;</strong>"


def _button(label: str, url: str) -> str:
    return (
        f'<p style="margin:24px 0;"><a href="{escape(url, quote=True)}" '
        f'style="background-color:{_RED};color:#ffffff;padding:12px 28px;'
        f'border-radius:6px;text-decoration:none;font-weight:600;">{escape(label)}</a></p>'
    )


def _motivation_block(motivation: str) -> str:
    return (
        '<div style="background-color:#fef2f2;border-radius:6px;padding:16px;'
        f'border-left:4px solid {_RED};margin:16px 0;">'
        '<p style="margin:0;font-size:13px;color:#64748b;">Motivazione</p>'
        '<p style="margin:8px 0 0;font-size:14px;color:#334155;line-height:1.6;">'
        f"{escape(motivation)}</p></div>"
    )


@beartype
def format_price(total_price: Decimal | None) -> str:
    """``EUR 1200.00`` or the on-request wording."""
    if total_price is None:
        return "Prezzo su richiesta"
    return f"EUR {total_price:.2f}"


@beartype
def offer_received(
    brand: str,
    site_url: str,
    agency_name: str,
    product_name: str,
    total_price: Decimal | None,
    offer_expiry: date | None,
) -> EmailContent:
    """Agency: a new offer is available."""
    body = [
        _heading("Nuova offerta ricevuta"),
        _greeting(agency_name),
        _PARAGRAPH.format(
            "Abbiamo preparato un&rsquo;offerta per la tua richiesta relativa a "
            f"{_quoted(product_name)}."
        ),
        _PARAGRAPH.format(f"<strong>{escape(format_price(total_price))}</strong>"),
    ]
    if offer_expiry is not None:
        body.append(
            _PARAGRAPH.format(
                "L&rsquo;offerta &egrave; valida fino al "
                f"<strong>{offer_expiry.isoformat()}</strong>."
            )
        )
    body.append(_button("Vedi l'offerta", f"{site_url}/agenzia/offerte"))
    return EmailContent(
        subject=f"Nuova offerta ricevuta - {brand}", html=_layout(brand, "".join(body))
    )


@beartype
def offer_accepted_agency(
    brand: str, site_url: str, agency_name: str, product_name: str
) -> EmailContent:
    """Agency: confirmation of its own acceptance."""
    body = "".join(
        [
            _heading("Offerta accettata"),
            _greeting(agency_name),
            _PARAGRAPH.format(
                f"La tua accettazione dell&rsquo;offerta per {_quoted(product_name)} "
                "&egrave; stata registrata con successo."
            ),
            _PARAGRAPH.format(
                "A breve riceverai gli estremi per effettuare il pagamento."
            ),
            _button("Vedi le tue richieste", f"{site_url}/agenzia/richieste"),
        ]
    )
    return EmailContent(subject=f"Offerta accettata - {brand}", html=_layout(brand, body))


@beartype
def offer_accepted_admin(
    brand: str, site_url: str, agency_name: str, product_name: str, request_id: str
) -> EmailContent:
    """Operators: an agency accepted an offer."""
    body = "".join(
        [
            _heading("Offerta accettata", _GREEN),
            _PARAGRAPH.format(
                f"L&rsquo;agenzia <strong>{escape(agency_name)}</strong> ha accettato "
                f"l&rsquo;offerta per {_quoted(product_name)}."
            ),
            _PARAGRAPH.format("Procedi con l&rsquo;invio degli estremi di pagamento."),
            _button("Gestisci il preventivo", f"{site_url}/admin/preventivi/{request_id}"),
        ]
    )
    return EmailContent(
        subject=f"Offerta accettata da {agency_name}", html=_layout(brand, body)
    )


@beartype
def offer_declined_admin(
    brand: str,
    site_url: str,
    agency_name: str,
    product_name: str,
    request_id: str,
    motivation: str | None,
) -> EmailContent:
    """Operators: an agency declined an offer, with its motivation if any."""
    body = [
        _heading("Offerta rifiutata", _RED),
        _PARAGRAPH.format(
            f"L&rsquo;agenzia <strong>{escape(agency_name)}</strong> ha rifiutato "
            f"l&rsquo;offerta per {_quoted(product_name)}."
        ),
    ]
    if motivation:
        body.append(_motivation_block(motivation))
    body.append(
        _button("Gestisci il preventivo", f"{site_url}/admin/preventivi/{request_id}")
    )
    return EmailContent(
        subject=f"Offerta rifiutata da {agency_name}", html=_layout(brand, "".join(body))
    )


@beartype
def offer_revoked(
    brand: str, site_url: str, agency_name: str, product_name: str
) -> EmailContent:
    """Agency: the pending offer was withdrawn."""
    body = "".join(
        [
            _heading("Offerta revocata", _RED),
            _greeting(agency_name),
            _PARAGRAPH.format(
                f"L&rsquo;offerta per {_quoted(product_name)} &egrave; stata revocata. "
                "Ti contatteremo con una nuova proposta."
            ),
            _button("Vedi le tue richieste", f"{site_url}/agenzia/richieste"),
        ]
    )
    return EmailContent(subject=f"Offerta revocata - {brand}", html=_layout(brand, body))


@beartype
def payment_details(
    brand: str,
    site_url: str,
    agency_name: str,
    product_name: str,
    bank_details: str,
    amount: Decimal,
    reference: str,
) -> EmailContent:
    """Agency: bank transfer details for an accepted offer."""
    rows = "".join(
        f'<tr><td style="padding:12px 16px;font-size:13px;color:#64748b;">{label}</td>'
        f'<td style="padding:12px 16px;font-size:14px;color:{_NAVY};font-weight:600;">'
        f"{escape(value)}</td></tr>"
        for label, value in (
            ("IBAN", bank_details),
            ("Importo", format_price(amount)),
            ("Causale", reference),
        )
    )
    body = "".join(
        [
            _heading("Estremi di pagamento"),
            _greeting(agency_name),
            _PARAGRAPH.format(
                "Di seguito trovi gli estremi per effettuare il pagamento relativo a "
                f"{_quoted(product_name)}:"
            ),
            f'<table style="margin:16px 0;width:100%;border:1px solid #e2e8f0;">{rows}</table>',
            _PARAGRAPH.format(
                "Una volta effettuato il pagamento, il nostro team "
                "provveder&agrave; a confermare la prenotazione."
            ),
            _button("Vedi dettagli", f"{site_url}/agenzia/richieste"),
        ]
    )
    return EmailContent(
        subject=f"Estremi di pagamento - {brand}", html=_layout(brand, body)
    )


@beartype
def booking_confirmed(
    brand: str, site_url: str, agency_name: str, product_name: str
) -> EmailContent:
    """Agency: payment received and booking confirmed."""
    body = "".join(
        [
            _heading("Prenotazione confermata", _GREEN),
            _greeting(agency_name),
            _PARAGRAPH.format(
                f"La prenotazione per {_quoted(product_name)} &egrave; confermata. "
                "Grazie per aver scelto i nostri viaggi."
            ),
            _button("Vedi dettagli", f"{site_url}/agenzia/richieste"),
        ]
    )
    return EmailContent(
        subject=f"Prenotazione confermata - {brand}", html=_layout(brand, body)
    )


@beartype
def quote_rejected(
    brand: str, site_url: str, agency_name: str, product_name: str, motivation: str
) -> EmailContent:
    """Agency: the request was rejected by the operator."""
    body = "".join(
        [
            _heading("Richiesta non confermata", _RED),
            _greeting(agency_name),
            _PARAGRAPH.format(
                f"Purtroppo la tua richiesta per {_quoted(product_name)} "
                "non &egrave; stata confermata."
            ),
            _motivation_block(motivation),
            _PARAGRAPH.format(
                "Per ulteriori informazioni o per esplorare altre opzioni, "
                "non esitare a contattarci."
            ),
            _button("Esplora i nostri viaggi", site_url),
        ]
    )
    return EmailContent(
        subject=f"Richiesta non confermata - {brand}", html=_layout(brand, body)
    )
