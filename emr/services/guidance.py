"""
Rule based clinical guidance.

Two entry points:

``analyze_symptoms(text)``
    Scans the free-text "current condition" of a consultation against a
    fixed table of regular expressions.  It reports red flags (with an
    action and a rationale for each), the chronology of the complaint,
    the body systems involved and an overall urgency.

``guidance_alerts(context)``
    Produces severity tagged alerts from vital signs, the medication
    list, the patient's age and the documentation state.

Both can be enriched by an external chat completion model (see
``emr.services.ai``).  The model output is merged with a shallow dict
merge; the rule based findings always win for red flags and systems.
"""
from __future__ import annotations

import json
import re
from typing import Optional

from emr.services import ai

MIN_AI_TEXT_LENGTH = 20
MAX_ALERTS = 10

RED_FLAGS = [
    (re.compile(r'dolor.*pecho|chest.*pain|dolor.*torácico', re.I), 'critical',
     'ECG inmediato y evaluación cardiológica', 'Posible síndrome coronario agudo'),
    (re.compile(r'dificultad.*respirar|disnea.*súbita|shortness.*breath', re.I), 'critical',
     'Evaluación respiratoria urgente', 'Posible embolia pulmonar o edema agudo'),
    (re.compile(r'pérdida.*conciencia|sincope|síncope|desmayo', re.I), 'danger',
     'Evaluación neurológica y cardiovascular', 'Múltiples etiologías graves posibles'),
    (re.compile(r'cefalea.*súbita|peor.*dolor.*cabeza.*vida', re.I), 'critical',
     'TC cerebral urgente', 'Posible hemorragia subaracnoidea'),
    (re.compile(r'fiebre.*alta|temperatura.*40|fever.*104', re.I), 'danger',
     'Evaluación infecciosa urgente', 'Riesgo de sepsis o meningitis'),
    (re.compile(r'sangrado.*abundante|hemorragia', re.I), 'critical',
     'Control hemorrágico inmediato', 'Riesgo de shock hipovolémico'),
    (re.compile(r'dolor.*abdominal.*intenso', re.I), 'danger',
     'Evaluación quirúrgica', 'Posible abdomen agudo'),
    (re.compile(r'alteración.*mental|confusión.*súbita', re.I), 'danger',
     'Evaluación neurológica y metabólica', 'Múltiples causas neurológicas/metabólicas'),
]

SYSTEM_PATTERNS = {
    'cardiovascular': [r'dolor.*pecho', r'palpitaciones', r'edema', r'disnea.*esfuerzo'],
    'respiratory': [r'tos', r'disnea', r'dolor.*torácico.*respirar', r'sibilancias'],
    'neurological': [r'cefalea', r'mareo', r'vértigo', r'alteración.*sensibilidad', r'debilidad'],
    'gastrointestinal': [r'dolor.*abdominal', r'náuseas', r'vómito', r'diarrea', r'estreñimiento'],
    'musculoskeletal': [r'dolor.*articular', r'dolor.*muscular', r'rigidez', r'limitación.*movimiento'],
    'genitourinary': [r'dolor.*orinar', r'frecuencia.*urinaria', r'hematuria'],
    'dermatological': [r'rash', r'prurito', r'lesiones.*piel', r'cambios.*piel'],
    'endocrine': [r'poliuria', r'polidipsia', r'pérdida.*peso', r'fatiga.*extrema'],
}

TIMELINE_KEYWORDS = {
    'acute': [r'súbito', r'repentino', r'minutos', r'horas', r'ayer', r'today', r'sudden'],
    'subacute': [r'días', r'semana', r'week', r'gradual', r'progressive'],
    'chronic': [r'meses', r'años', r'months', r'years', r'crónico', r'persistente'],
}

DRUG_INTERACTIONS = [
    (('warfarina', 'aspirina'), 'Riesgo hemorrágico aumentado'),
    (('warfarina', 'amoxicilina'), 'Potencia efecto anticoagulante'),
    (('digoxina', 'furosemida'), 'Riesgo de toxicidad digitálica'),
]

_ALERT_ORDER = {'critical': 0, 'warning': 1, 'info': 2, 'suggestion': 3}

SYMPTOM_PROMPT = """Eres un médico experto en análisis de síntomas. Analiza el texto del padecimiento actual y extrae información estructurada.

RESPONDE SOLO CON UN JSON VÁLIDO con las claves: primarySymptoms (lista), timelineParsed (onset, duration, evolution),
severity (pain 0-10, urgency low|medium|high|critical, functional_impact none|mild|moderate|severe),
associatedSymptoms (lista), suggestedQuestions (category, question, priority, rationale),
possibleDiagnoses (name, icd10, probability, supportingFindings, differentialPoints),
recommendedScales (name, rationale, priority essential|recommended|optional)."""

ALERTS_PROMPT = """Analiza el siguiente contexto médico y proporciona alertas/sugerencias críticas:

CONTEXTO MÉDICO:
{context}

Identifica signos de alarma, inconsistencias entre síntomas, signos vitales y diagnóstico,
estudios complementarios necesarios, consideraciones de seguridad del paciente y oportunidades de mejora.

Responde SOLO en formato JSON: {{"alerts": [{{"type": "critical|warning|info|suggestion", "title": "...",
"message": "...", "action": "...", "confidence": 0-100, "category": "safety|diagnosis|treatment|efficiency"}}]}}"""


def _matches(patterns, text):
    return [p for p in patterns if re.search(p, text)]


def analyze_symptoms(text: str) -> dict:
    """Rule based analysis of a free-text symptom description."""
    text = text or ''
    lower = text.lower()

    red_flags = []
    for pattern, severity, action, rationale in RED_FLAGS:
        if pattern.search(text):
            red_flags.append({
                'symptom': pattern.pattern,
                'severity': severity,
                'action': action,
                'rationale': rationale,
            })

    if _matches(TIMELINE_KEYWORDS['acute'], lower):
        chronology = 'acute'
    elif _matches(TIMELINE_KEYWORDS['chronic'], lower):
        chronology = 'chronic'
    else:
        chronology = 'subacute'

    systems = []
    for system, patterns in SYSTEM_PATTERNS.items():
        findings = _matches(patterns, lower)
        if findings:
            systems.append({
                'system': system,
                'involvement': 'primary' if len(findings) > 1 else 'possible',
                'findings': findings,
            })

    if any(f['severity'] == 'critical' for f in red_flags):
        urgency = 'critical'
    elif any(f['severity'] == 'danger' for f in red_flags):
        urgency = 'high'
    else:
        urgency = 'medium'

    return {
        'redFlags': red_flags,
        'timelineParsed': {'onset': '', 'duration': '', 'evolution': '', 'chronology': chronology},
        'severity': {'urgency': urgency, 'functional_impact': 'moderate'},
        'systemsInvolved': systems,
        'recommendedScales': [],
    }


def merge_analysis(basic: dict, ai_result: Optional[dict]) -> dict:
    """Combine rule findings with a model answer (shallow merge)."""
    ai_result = ai_result or {}
    return {
        'primarySymptoms': ai_result.get('primarySymptoms') or [],
        'timelineParsed': {**basic['timelineParsed'], **(ai_result.get('timelineParsed') or {})},
        'severity': {**basic['severity'], **(ai_result.get('severity') or {})},
        'associatedSymptoms': ai_result.get('associatedSymptoms') or [],
        'redFlags': basic['redFlags'],
        'suggestedQuestions': ai_result.get('suggestedQuestions') or [],
        'possibleDiagnoses': ai_result.get('possibleDiagnoses') or [],
        'systemsInvolved': basic['systemsInvolved'],
        'recommendedScales': ai_result.get('recommendedScales') or [],
    }


def analyze_with_ai(text: str) -> dict:
    basic = analyze_symptoms(text)
    ai_result = {}
    if len((text or '').strip()) > MIN_AI_TEXT_LENGTH and ai.is_enabled():
        ai_result = ai.chat_json(SYMPTOM_PROMPT, f'Analiza este padecimiento actual: "{text}"',
                                 temperature=0.3, max_tokens=1500)
    return merge_analysis(basic, ai_result)


def _alert(id_, type_, title, message, action, confidence, category, source='rules'):
    return {
        'id': id_,
        'type': type_,
        'title': title,
        'message': message,
        'action': action,
        'confidence': confidence,
        'source': source,
        'category': category,
    }


def parse_blood_pressure(vitals: dict):
    """Return (systolic, diastolic) from ``"120/80"`` or separate fields."""
    bp = vitals.get('blood_pressure') or vitals.get('bloodPressure')
    if bp and isinstance(bp, str) and '/' in bp:
        s, _, d = bp.partition('/')
        try:
            return float(s), float(d)
        except ValueError:
            return None
    s = vitals.get('systolic')
    d = vitals.get('diastolic')
    try:
        return (float(s), float(d)) if s is not None and d is not None else None
    except (TypeError, ValueError):
        return None


def _num(value):
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _fmt(n: float) -> str:
    return str(int(n)) if float(n).is_integer() else str(n)


def vital_sign_alerts(vitals: dict) -> list:
    alerts = []
    bp = parse_blood_pressure(vitals)
    if bp:
        s, d = bp
        label = f'{_fmt(s)}/{_fmt(d)}'
        if s > 180 or d > 120:
            alerts.append(_alert('bp_critical', 'critical', 'Crisis Hipertensiva',
                                 f'PA {label} requiere evaluación urgente',
                                 'Evaluar crisis hipertensiva, considerar medicación IV', 95, 'safety'))
        elif s > 140 or d > 90:
            alerts.append(_alert('bp_elevated', 'warning', 'Hipertensión', f'PA {label} elevada',
                                 'Verificar medición, considerar antihipertensivos', 90, 'diagnosis'))

    temp = _num(vitals.get('temperature'))
    if temp is not None and temp > 39.5:
        alerts.append(_alert('fever_high', 'warning', 'Fiebre Alta', f'Temperatura {_fmt(temp)}°C requiere atención',
                             'Antipiréticos, búsqueda de foco infeccioso', 90, 'safety'))

    hr = _num(vitals.get('heart_rate') or vitals.get('heartRate'))
    if hr is not None:
        if hr > 120:
            alerts.append(_alert('tachycardia', 'warning', 'Taquicardia', f'FC {int(hr)} lpm elevada',
                                 'Evaluar causas de taquicardia, ECG', 85, 'safety'))
        elif hr < 50:
            alerts.append(_alert('bradycardia', 'warning', 'Bradicardia', f'FC {int(hr)} lpm baja',
                                 'Evaluar medicamentos, ECG, marcapasos', 85, 'safety'))
    return alerts


def _medication_names(medications) -> list:
    names = []
    for m in medications or []:
        name = m.get('name') if isinstance(m, dict) else m
        if name:
            names.append(str(name).lower())
    return names


def interaction_alerts(medications) -> list:
    names = _medication_names(medications)
    alerts = []
    for index, (drugs, risk) in enumerate(DRUG_INTERACTIONS):
        if all(any(drug in n for n in names) for drug in drugs):
            alerts.append(_alert(f'interaction_{index}', 'warning', 'Interacción Medicamentosa',
                                 f"{' + '.join(drugs)}: {risk}", 'Revisar dosis, monitoreo adicional',
                                 85, 'safety'))
    return alerts


def red_flag_alerts(text: str) -> list:
    alerts = []
    for index, flag in enumerate(analyze_symptoms(text)['redFlags']):
        alerts.append(_alert(f'red_flag_{index}', 'critical' if flag['severity'] == 'critical' else 'warning',
                             'Signo de Alarma', flag['rationale'], flag['action'], 80, 'safety'))
    return alerts


def rule_alerts(context: dict) -> list:
    alerts = []
    vitals = context.get('vitalSigns') or {}
    if vitals:
        alerts.extend(vital_sign_alerts(vitals))
    medications = context.get('medications') or []
    if len(medications) > 1:
        alerts.extend(interaction_alerts(medications))
    age = _num(context.get('patientAge'))
    if age and age > 65 and medications:
        alerts.append(_alert('geriatric_caution', 'info', 'Paciente Geriátrico',
                             'Ajustar dosis según función renal/hepática',
                             'Revisar criterios Beers, ajuste de dosis', 80, 'safety'))
    condition = context.get('currentCondition') or ''
    if condition:
        alerts.extend(red_flag_alerts(condition))
        if not context.get('diagnosis'):
            alerts.append(_alert('missing_diagnosis', 'suggestion', 'Diagnóstico Pendiente',
                                 'Considerar establecer diagnóstico específico',
                                 'Completar evaluación diagnóstica', 75, 'efficiency'))
    return alerts


def finalize_alerts(alerts: list, limit: int = MAX_ALERTS) -> list:
    """De-duplicate by (title, message), sort by severity and cap the list."""
    seen = set()
    unique = []
    for a in alerts:
        key = (a.get('title'), a.get('message'))
        if key in seen:
            continue
        seen.add(key)
        unique.append(a)
    unique.sort(key=lambda a: _ALERT_ORDER.get(a.get('type'), len(_ALERT_ORDER)))
    return unique[:limit]


def _context_text(context: dict) -> str:
    lines = []
    for key, value in context.items():
        if value in (None, '', [], {}):
            continue
        if isinstance(value, list):
            value = ', '.join(v.get('name', json.dumps(v, ensure_ascii=False)) if isinstance(v, dict) else str(v)
                              for v in value)
        elif isinstance(value, dict):
            value = json.dumps(value, ensure_ascii=False)
        lines.append(f'{key}: {value}')
    return '\n'.join(lines)


def ai_alerts(context: dict) -> list:
    if not ai.is_enabled():
        return []
    data = ai.chat_json('Eres un asistente médico experto en identificar alertas clínicas y sugerencias de mejora.',
                        ALERTS_PROMPT.format(context=_context_text(context)),
                        reasoning=True, temperature=0.2, max_tokens=1000)
    alerts = []
    for index, a in enumerate(data.get('alerts') or []):
        if not isinstance(a, dict) or a.get('type') not in _ALERT_ORDER:
            continue
        alerts.append(_alert(f'ai_{index}', a['type'], a.get('title', ''), a.get('message', ''),
                             a.get('action', ''), a.get('confidence', 0), a.get('category', 'diagnosis'),
                             source='ai'))
    return alerts


def guidance_alerts(context: dict, use_ai: bool = True) -> list:
    alerts = rule_alerts(context)
    if use_ai:
        alerts.extend(ai_alerts(context))
    return finalize_alerts(alerts)
