"""
Render a visual prescription layout into a printable HTML document.

A layout is a list of absolutely positioned elements plus canvas
settings.  Each visible element becomes a ``<div>`` with inline CSS at
the coordinates the editor saved; ``{{variable}}`` placeholders in the
element content are replaced with prescription data first.  The browser
print dialog does the rest, so there is no pagination or text
measurement here.
"""
from __future__ import annotations

import html
import math
import re
from datetime import datetime
from typing import Optional

from django.utils import timezone

DEFAULT_OPTIONS = {
    'pageSize': 'A4',
    'orientation': 'portrait',
    'margins': {'top': '20mm', 'right': '15mm', 'bottom': '20mm', 'left': '15mm'},
    'quality': 'high',
    'colorMode': 'color',
    'scaleFactor': 1.0,
    'includeQRCode': True,
    'includeDigitalSignature': True,
    'watermarkText': '',
    'autoPrint': True,
}

DEFAULT_CANVAS = {'backgroundColor': '#ffffff', 'canvasSize': {'width': 794, 'height': 1123}}

# used when a doctor has not designed a layout yet
DEFAULT_ELEMENTS = [
    {'id': 'clinic', 'type': 'text', 'position': {'x': 40, 'y': 40}, 'size': {'width': 714, 'height': 40},
     'content': '{{clinicName}}', 'style': {'fontSize': 22, 'fontWeight': 'bold', 'textAlign': 'center'},
     'zIndex': 1},
    {'id': 'doctor', 'type': 'text', 'position': {'x': 40, 'y': 90}, 'size': {'width': 714, 'height': 40},
     'content': '{{doctorName}}\nCédula profesional: {{doctorLicense}}',
     'style': {'fontSize': 13, 'textAlign': 'center'}, 'zIndex': 1},
    {'id': 'sep-top', 'type': 'separator', 'position': {'x': 40, 'y': 140}, 'size': {'width': 714, 'height': 1},
     'zIndex': 1},
    {'id': 'patient', 'type': 'text', 'position': {'x': 40, 'y': 160}, 'size': {'width': 480, 'height': 40},
     'content': 'Paciente: {{patientName}}  Edad: {{patientAge}}', 'style': {'fontSize': 13}, 'zIndex': 1},
    {'id': 'date', 'type': 'text', 'position': {'x': 540, 'y': 160}, 'size': {'width': 214, 'height': 24},
     'content': 'Fecha: {{date}}', 'style': {'fontSize': 13, 'textAlign': 'right'}, 'zIndex': 1},
    {'id': 'diagnosis', 'type': 'text', 'position': {'x': 40, 'y': 210}, 'size': {'width': 714, 'height': 40},
     'content': 'Diagnóstico: {{diagnosis}}', 'style': {'fontSize': 13}, 'zIndex': 1},
    {'id': 'medications', 'type': 'text', 'position': {'x': 40, 'y': 260}, 'size': {'width': 714, 'height': 560},
     'content': '{{medications}}', 'style': {'fontSize': 14, 'lineHeight': 1.5}, 'zIndex': 1},
    {'id': 'notes', 'type': 'text', 'position': {'x': 40, 'y': 830}, 'size': {'width': 714, 'height': 100},
     'content': '{{notes}}', 'style': {'fontSize': 12}, 'zIndex': 1},
    {'id': 'signature', 'type': 'signature', 'position': {'x': 477, 'y': 980}, 'size': {'width': 277, 'height': 60},
     'content': 'Firma del Médico', 'zIndex': 1},
]

MONTHS_ES = ('enero', 'febrero', 'marzo', 'abril', 'mayo', 'junio', 'julio',
             'agosto', 'septiembre', 'octubre', 'noviembre', 'diciembre')

_STYLE_RULES = (
    ('fontSize', 'font-size: {}px'),
    ('fontFamily', "font-family: '{}'"),
    ('color', 'color: {}'),
    ('fontWeight', 'font-weight: {}'),
    ('fontStyle', 'font-style: {}'),
    ('textDecoration', 'text-decoration: {}'),
    ('textAlign', 'text-align: {}'),
    ('lineHeight', 'line-height: {}'),
)


def escape(text) -> str:
    return html.escape(str(text or ''), quote=False)


def long_date_es(value: datetime) -> str:
    """``19 de octubre de 2026``"""
    return f'{value.day} de {MONTHS_ES[value.month - 1]} de {value.year}'


def format_medications(medications) -> str:
    if not medications:
        return ''
    blocks = []
    for index, med in enumerate(medications, start=1):
        lines = [
            f"{index}. {med.get('name', '')} {med.get('dosage', '')}",
            f"   {med.get('frequency', '')} por {med.get('duration', '')}",
        ]
        if med.get('instructions'):
            lines.append(f"   Indicaciones: {med['instructions']}")
        blocks.append('\n'.join(lines))
    return '\n\n'.join(blocks)


def template_variables(data: dict, now: Optional[datetime] = None) -> dict:
    now = now or timezone.localtime()
    return {
        'patientName': data.get('patientName') or 'Nombre del Paciente',
        'doctorName': data.get('doctorName') or 'Dr. Nombre',
        'doctorLicense': data.get('doctorLicense') or '00000000',
        'clinicName': data.get('clinicName') or 'Clínica Médica',
        'diagnosis': data.get('diagnosis') or 'Diagnóstico',
        'medications': format_medications(data.get('medications')),
        'notes': data.get('notes') or '',
        'date': data.get('date') or now.strftime('%d/%m/%Y'),
        'patientAge': data.get('patientAge') or '',
        'patientWeight': data.get('patientWeight') or '',
        'followUpDate': data.get('followUpDate') or '',
        'prescriptionId': data.get('prescriptionId') or '',
    }


def replace_variables(content: str, variables: dict) -> str:
    """Substitute known ``{{name}}`` tokens; unknown tokens stay as written."""
    if not content:
        return ''
    for key, value in variables.items():
        content = content.replace('{{%s}}' % key, str(value))
    return content


def _css_value(value) -> str:
    return re.sub(r"[\"'<>;{}]", "", str(value))


def _num(value, default: float = 0.0) -> float:
    """Finite float from stored JSON, else ``default``."""
    try:
        n = float(value)
    except (TypeError, ValueError):
        return default
    return n if math.isfinite(n) else default


def _px(value, default: float = 0.0) -> str:
    n = _num(value, default)
    return str(int(n)) if n.is_integer() else f'{n:.2f}'.rstrip('0')


def style_to_css(style: Optional[dict]) -> str:
    if not isinstance(style, dict) or not style:
        return ''
    rules = [tpl.format(_css_value(style[key])) for key, tpl in _STYLE_RULES if style.get(key)]
    return '; '.join(rules) + ';'


def _geometry(el: dict):
    pos = el.get('position') if isinstance(el.get('position'), dict) else {}
    size = el.get('size') if isinstance(el.get('size'), dict) else {}
    return pos, size


def _base_style(el: dict) -> str:
    # geometry is interpolated into a quoted attribute, so only numbers get through
    pos, size = _geometry(el)
    return (
        f"position: absolute; left: {_px(pos.get('x'))}px; top: {_px(pos.get('y'))}px; "
        f"width: {_px(size.get('width'))}px; height: {_px(size.get('height'))}px; "
        f"z-index: {int(_num(el.get('zIndex')))}; {style_to_css(el.get('style'))} "
        "overflow: hidden; word-wrap: break-word; page-break-inside: avoid;"
    )


def render_element(el: dict, content: str, now: datetime) -> str:
    base = _base_style(el)
    kind = el.get('type')
    if kind == 'text':
        return f'<div style="{base} white-space: pre-wrap;">{escape(content)}</div>'
    if kind == 'box':
        return (f'<div style="{base} border: 1px solid {_css_value(el.get("borderColor") or "#333")}; '
                f'background: {_css_value(el.get("backgroundColor") or "transparent")};"></div>')
    if kind == 'separator':
        return f'<div style="{base} height: 1px; background: {_css_value(el.get("borderColor") or "#333")}; border: none;"></div>'
    if kind == 'qr':
        _, size = _geometry(el)
        side = _px(min(_num(size.get('width')), _num(size.get('height'))))
        return (f'<div style="{base} display: flex; align-items: center; justify-content: center;">'
                f'<div style="width: {side}px; height: {side}px; background: #f0f0f0; border: 1px solid #ccc; '
                'display: flex; align-items: center; justify-content: center; font-size: 12px;">QR Code</div></div>')
    if kind == 'date':
        return f'<div style="{base}">{long_date_es(now)}</div>'
    if kind == 'time':
        return f'<div style="{base}">{now:%H:%M}</div>'
    if kind == 'signature':
        return (f'<div style="{base} border-top: 1px solid #666; display: flex; align-items: end; '
                f'justify-content: center;"><span style="font-size: 12px; color: #666;">'
                f'{escape(content or "Firma del Médico")}</span></div>')
    if kind == 'table':
        rows = ''.join(
            '<tr>' + ''.join(
                f'<td style="border: 1px solid #ccc; padding: 4px; font-size: inherit;">{escape(cell.strip())}</td>'
                for cell in row.split('|')
            ) + '</tr>'
            for row in content.split('\n')
        )
        return (f'<div style="{base}"><table style="width: 100%; border-collapse: collapse;">'
                f'<tbody>{rows}</tbody></table></div>')
    return f'<div style="{base}">{escape(content)}</div>'


def visible_elements(elements) -> list:
    # sorted() is stable, equal zIndex keeps editor order
    return sorted((el for el in elements or [] if isinstance(el, dict) and el.get('isVisible', True)),
                  key=lambda el: _num(el.get('zIndex')))


def render_content(elements, data: dict, now: Optional[datetime] = None) -> str:
    now = now or timezone.localtime()
    variables = template_variables(data, now)
    return ''.join(render_element(el, replace_variables(str(el.get('content') or ''), variables), now)
                   for el in visible_elements(elements))


def print_css(canvas: dict, opts: dict) -> str:
    size = canvas.get('canvasSize')
    if not isinstance(size, dict):
        size = DEFAULT_CANVAS['canvasSize']
    margins = {k: _css_value(v) for k, v in {**DEFAULT_OPTIONS['margins'], **(opts.get('margins') or {})}.items()}
    background = _css_value(canvas.get('backgroundColor') or '#ffffff')
    page = f"{_css_value(opts['pageSize'])} {_css_value(opts['orientation'])}"
    filters = ''
    if opts['colorMode'] == 'grayscale':
        filters = '* { filter: grayscale(100%) !important; }'
    elif opts['colorMode'] == 'blackwhite':
        filters = '* { filter: grayscale(100%) contrast(200%) brightness(80%) !important; }'
    return f"""
* {{ margin: 0; padding: 0; box-sizing: border-box; -webkit-print-color-adjust: exact !important; print-color-adjust: exact !important; }}
body {{ font-family: Arial, sans-serif; background: white !important; color: black !important; margin: 0; padding: 0; }}
.print-container {{ position: relative; width: {_px(size.get('width'), 794.0)}px; height: {_px(size.get('height'), 1123.0)}px; background: {background}; margin: 0 auto; overflow: hidden; transform: scale({_px(opts['scaleFactor'], 1.0)}); transform-origin: top left; }}
@page {{ size: {page}; margin: {margins['top']} {margins['right']} {margins['bottom']} {margins['left']}; }}
@media print {{
  body {{ margin: 0 !important; padding: 0 !important; background: white !important; }}
  .print-container {{ page-break-inside: avoid; }}
  * {{ box-shadow: none !important; text-shadow: none !important; }}
  {filters}
}}
.watermark {{ position: fixed; top: 50%; left: 50%; transform: translate(-50%, -50%) rotate(-45deg); font-size: 48px; color: rgba(0, 0, 0, 0.1); font-weight: bold; z-index: 1000; pointer-events: none; user-select: none; }}
"""


_AUTO_PRINT = """<script>
window.onload = function() { setTimeout(function() { window.print(); }, 250); };
</script>"""


def render_print_html(elements, canvas: Optional[dict], data: dict, options: Optional[dict] = None,
                      now: Optional[datetime] = None) -> str:
    """Build the full HTML document for one prescription."""
    opts = {**DEFAULT_OPTIONS, **{k: v for k, v in (options or {}).items() if v is not None}}
    canvas = {**DEFAULT_CANVAS, **(canvas or {})}
    body = render_content(elements, data, now)
    watermark = f'<div class="watermark">{escape(opts["watermarkText"])}</div>' if opts.get('watermarkText') else ''
    title = escape(data.get('patientName') or 'Nombre del Paciente')
    return (
        '<!DOCTYPE html>\n<html lang="es">\n<head>\n<meta charset="UTF-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        f'<title>Receta Médica - {title}</title>\n<style>{print_css(canvas, opts)}</style>\n</head>\n<body>\n'
        f'<div class="print-container">{body}{watermark}</div>\n'
        f'{_AUTO_PRINT if opts.get("autoPrint") else ""}\n</body>\n</html>\n'
    )


def options_from_settings(ps) -> dict:
    """Translate a :class:`PrintSettings` row into render options."""
    if ps is None:
        return {}
    return {
        'pageSize': ps.page_size,
        'orientation': ps.orientation,
        'margins': ps.margins or None,
        'quality': ps.quality,
        'colorMode': ps.color_mode,
        'scaleFactor': ps.scale_factor,
        'includeQRCode': ps.include_qr_code,
        'includeDigitalSignature': ps.include_digital_signature,
        'watermarkText': ps.watermark_text,
    }
