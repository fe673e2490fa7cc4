from rest_framework.exceptions import NotFound, ValidationError

from emr.models import PhysicalExamTemplate
from emr.services.common import clean_text, is_super, iso

QUESTION_TYPES = ('text', 'textarea', 'number', 'select', 'radio', 'checkbox', 'boolean', 'scale')
CHOICE_TYPES = ('select', 'radio', 'checkbox')


def template_to_dict(t: PhysicalExamTemplate) -> dict:
    return {
        'id': t.id,
        'doctorId': t.doctor_id,
        'name': t.name,
        'definition': t.definition,
        'isActive': t.is_active,
        'createdAt': iso(t.created_at),
        'updatedAt': iso(t.updated_at),
    }


def definition_errors(definition) -> list:
    """Return a list of human readable problems; empty means the definition is usable."""
    if not isinstance(definition, dict):
        return ['La definición debe ser un objeto']
    sections = definition.get('sections')
    if not isinstance(sections, list):
        return ['La definición debe incluir una lista de secciones']
    errors = []
    section_ids = set()
    for i, section in enumerate(sections, start=1):
        if not isinstance(section, dict):
            errors.append(f'Sección {i}: formato inválido')
            continue
        sid = section.get('id')
        if not sid or not section.get('title'):
            errors.append(f'Sección {i}: id y título son obligatorios')
        if sid in section_ids:
            errors.append(f'Sección {i}: id duplicado "{sid}"')
        section_ids.add(sid)
        order = section.get('order')
        if not isinstance(order, int) or isinstance(order, bool):
            errors.append(f'Sección {i}: order debe ser un número entero')
        questions = section.get('questions')
        if not isinstance(questions, list):
            errors.append(f'Sección {i}: questions debe ser una lista')
            continue
        question_ids = set()
        for j, q in enumerate(questions, start=1):
            where = f'Sección {i}, pregunta {j}'
            if not isinstance(q, dict):
                errors.append(f'{where}: formato inválido')
                continue
            if not q.get('id') or not q.get('label'):
                errors.append(f'{where}: id y etiqueta son obligatorios')
            if q.get('id') in question_ids:
                errors.append(f'{where}: id duplicado "{q.get("id")}"')
            question_ids.add(q.get('id'))
            if q.get('type') not in QUESTION_TYPES:
                errors.append(f'{where}: tipo "{q.get("type")}" no soportado')
            elif q['type'] in CHOICE_TYPES:
                options = q.get('options')
                if not isinstance(options, list) or not options:
                    errors.append(f'{where}: las preguntas de opción requieren opciones')
    return errors


def _validate(definition) -> dict:
    errors = definition_errors(definition)
    if errors:
        raise ValidationError({'definition': errors})
    definition.setdefault('version', '1.0')
    definition.setdefault('metadata', {})
    return definition


def list_templates(doctor, include_inactive: bool = False):
    qs = PhysicalExamTemplate.objects.filter(doctor=doctor)
    if not include_inactive:
        qs = qs.filter(is_active=True)
    return qs.order_by('name', 'id')


def get_template_or_raise(user, template_id) -> PhysicalExamTemplate:
    t = PhysicalExamTemplate.objects.filter(id=template_id).first()
    if not t or not (t.doctor_id == user.id or is_super(user)):
        raise NotFound('Plantilla de exploración no encontrada')
    return t


def create_template(doctor, data: dict) -> PhysicalExamTemplate:
    name = clean_text(data.get('name'), 255)
    if not name:
        raise ValidationError({'name': 'El nombre es obligatorio'})
    return PhysicalExamTemplate.objects.create(doctor=doctor, name=name, definition=_validate(data.get('definition')))


def update_template(t: PhysicalExamTemplate, data: dict) -> PhysicalExamTemplate:
    if 'name' in data:
        name = clean_text(data['name'], 255)
        if not name:
            raise ValidationError({'name': 'El nombre es obligatorio'})
        t.name = name
    if 'definition' in data:
        t.definition = _validate(data['definition'])
    if 'isActive' in data:
        t.is_active = bool(data['isActive'])
    t.save()
    return t


def deactivate_template(t: PhysicalExamTemplate) -> None:
    t.is_active = False
    t.save(update_fields=['is_active', 'updated_at'])
