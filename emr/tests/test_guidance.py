import pytest

from emr.services import ai, guidance

from .helpers import api


def test_chest_pain_is_a_critical_red_flag():
    result = guidance.analyze_symptoms('Dolor en el pecho súbito desde hace 2 horas, con náuseas')
    assert result['severity']['urgency'] == 'critical'
    assert result['redFlags'][0]['action'] == 'ECG inmediato y evaluación cardiológica'
    assert result['timelineParsed']['chronology'] == 'acute'
    systems = {s['system']: s for s in result['systemsInvolved']}
    assert 'cardiovascular' in systems
    assert 'gastrointestinal' in systems


def test_chronic_complaint_without_flags():
    result = guidance.analyze_symptoms('Dolor articular persistente desde hace meses')
    assert result['redFlags'] == []
    assert result['severity']['urgency'] == 'medium'
    assert result['timelineParsed']['chronology'] == 'chronic'


def test_merge_keeps_rule_findings():
    basic = guidance.analyze_symptoms('fiebre alta y tos')
    merged = guidance.merge_analysis(basic, {
        'redFlags': [], 'severity': {'pain': 4}, 'possibleDiagnoses': [{'name': 'Neumonía'}],
    })
    assert merged['redFlags'] == basic['redFlags']
    assert merged['severity'] == {'urgency': 'high', 'functional_impact': 'moderate', 'pain': 4}
    assert merged['possibleDiagnoses'] == [{'name': 'Neumonía'}]


def test_blood_pressure_parsing():
    assert guidance.parse_blood_pressure({'blood_pressure': '150/95'}) == (150.0, 95.0)
    assert guidance.parse_blood_pressure({'systolic': 120, 'diastolic': 80}) == (120.0, 80.0)
    assert guidance.parse_blood_pressure({'bloodPressure': 'alta'}) is None


def test_vital_sign_alerts():
    ids = [a['id'] for a in guidance.vital_sign_alerts(
        {'blood_pressure': '190/100', 'temperature': 40, 'heart_rate': 130})]
    assert ids == ['bp_critical', 'fever_high', 'tachycardia']
    alerts = guidance.vital_sign_alerts({'bloodPressure': '145/85', 'heartRate': 45})
    assert [a['id'] for a in alerts] == ['bp_elevated', 'bradycardia']
    assert alerts[0]['message'] == 'PA 145/85 elevada'


def test_context_alerts_sorted_and_deduplicated():
    alerts = guidance.guidance_alerts({
        'vitalSigns': {'blood_pressure': '150/95'},
        'medications': [{'name': 'Warfarina 5mg'}, {'name': 'Aspirina'}],
        'patientAge': 72,
        'currentCondition': 'dolor de pecho opresivo',
    }, use_ai=False)
    types = [a['type'] for a in alerts]
    assert types == sorted(types, key=lambda t: ['critical', 'warning', 'info', 'suggestion'].index(t))
    ids = {a['id'] for a in alerts}
    assert {'bp_elevated', 'interaction_0', 'geriatric_caution', 'red_flag_0', 'missing_diagnosis'} <= ids
    assert all(a['source'] == 'rules' for a in alerts)

    dupes = guidance.finalize_alerts([{'title': 'A', 'message': 'm', 'type': 'info'}] * 3)
    assert len(dupes) == 1


def test_ai_is_skipped_when_disabled(monkeypatch):
    def boom(*args, **kwargs):
        raise AssertionError('provider must not be called')

    monkeypatch.setattr(ai, 'chat_json', boom)
    assert ai.is_enabled() is False
    result = guidance.analyze_with_ai('Paciente con cefalea súbita, la peor de su vida, desde hace una hora')
    assert result['possibleDiagnoses'] == []
    assert result['severity']['urgency'] == 'critical'


def test_ai_answer_is_merged(monkeypatch, settings):
    settings.AI_GUIDANCE_ENABLED = True
    settings.AI_PROVIDERS = {'deepseek': {'api_key': 'k', 'base_url': 'http://ai.local', 'model': 'm',
                                          'reasoning_model': 'r'}}
    settings.AI_PROVIDER = 'deepseek'
    monkeypatch.setattr(ai, 'chat_json', lambda *a, **k: {
        'alerts': [{'type': 'suggestion', 'title': 'Solicitar HbA1c', 'message': 'Control glucémico'},
                   {'type': 'bogus', 'title': 'x'}],
    })
    alerts = guidance.guidance_alerts({'diagnosis': 'Diabetes'}, use_ai=True)
    assert [(a['id'], a['source']) for a in alerts] == [('ai_0', 'ai')]


def test_extract_json():
    assert ai.extract_json('Claro:\n```json\n{"a": 1}\n```') == {'a': 1}
    assert ai.extract_json('sin json') == {}
    assert ai.extract_json('{roto') == {}


@pytest.mark.django_db
def test_guidance_endpoints(doctor):
    client = api(doctor)
    r = client.post('/api/guidance/analyze', {'text': 'dificultad para respirar', 'useAI': False}, format='json')
    assert r.status_code == 200
    assert r.data['aiEnabled'] is False
    assert r.data['analysis']['severity']['urgency'] == 'critical'

    r = client.post('/api/guidance/alerts', {'vitalSigns': {'temperature': 39.8}, 'useAI': False}, format='json')
    assert r.status_code == 200
    assert [a['id'] for a in r.data['alerts']] == ['fever_high']
    assert client.post('/api/guidance/analyze', {}, format='json').status_code == 400
