from sqlalchemy import func, select

from app.models.notification_rule import NotificationRule
from app.models.notification_template import NotificationTemplate
from app.scripts.seed_notifications import DEFAULT_RULES, DEFAULT_TEMPLATES, seed


def _counts(db):
    return (
        db.scalar(select(func.count()).select_from(NotificationTemplate)),
        db.scalar(select(func.count()).select_from(NotificationRule)),
    )


def test_seed_is_idempotent(db):
    created = seed(db)
    assert len(created["templates"]) == len(DEFAULT_TEMPLATES)
    assert len(created["rules"]) == len(DEFAULT_RULES)

    assert seed(db) == {"templates": [], "rules": []}
    assert _counts(db) == (len(DEFAULT_TEMPLATES), len(DEFAULT_RULES))


def test_seeded_rules_point_at_seeded_templates(db):
    seed(db)
    template_ids = set(db.scalars(select(NotificationTemplate.id)).all())
    for rule in db.scalars(select(NotificationRule)).all():
        assert rule.template_ids()
        assert rule.template_ids() <= template_ids
        for channel in ("email", "sms"):
            selection = rule.channels[channel]
            assert bool(selection["template_id"]) == selection["enabled"]


def test_dry_run_writes_nothing(db):
    created = seed(db, dry_run=True)
    assert created["templates"] == [entry["name"] for entry in DEFAULT_TEMPLATES]
    assert _counts(db) == (0, 0)
