"""Tests for :mod:`herit.services.onboarding`."""

from unittest import TestCase, mock

from flask import Flask
from hypothesis import given, settings, strategies as st

from ...domain import StepPolicy, COMPLETE
from .. import onboarding, util
from ..exceptions import InvalidStep, InvalidPayload, StepOutOfOrder, \
    IncompleteOnboarding, NoSuchUser
from ..models import DBUser, DBAuditEvent
from .util import temporary_db, make_user

PERSONAL_INFO = {
    'first_name': 'Aoife',
    'last_name': 'Murphy',
    'phone_number': '+353 87 123 4567',
    'date_of_birth': '1980-02-29',
    'address_line_1': '1 Main Street',
    'address_line_2': '',
    'city': 'Cork',
    'county': 'Cork',
    'eircode': 'T12 AB34',
}

STATE_FIELDS = (
    'first_name', 'last_name', 'phone_number', 'date_of_birth',
    'address_line_1', 'address_line_2', 'city', 'county', 'eircode',
    'profile_photo_url', 'personal_info_completed', 'signature_completed',
    'legal_consent_completed', 'verification_completed',
    'onboarding_current_step', 'onboarding_status',
)


def state_of(db_user: DBUser) -> dict:
    """The user record, excluding timestamps."""
    return {field: getattr(db_user, field) for field in STATE_FIELDS}


class TestValidateStep(TestCase):
    """Step numbers must be integers in 0-3."""

    @given(st.integers(min_value=0, max_value=3))
    def test_valid(self, step):
        """Each step index is accepted as-is."""
        self.assertEqual(onboarding.validate_step(step), step)

    def test_integral_float(self):
        """A JSON number like ``2.0`` names step 2."""
        self.assertEqual(onboarding.validate_step(2.0), 2)

    @given(st.one_of(
        st.integers().filter(lambda i: i < 0 or i > 3),
        st.floats().filter(lambda f: not (f == f and f.is_integer()
                                          and 0 <= f <= 3)),
        st.booleans(),
        st.text(),
        st.none(),
        st.lists(st.integers()),
    ))
    def test_invalid(self, step):
        """Anything else is rejected."""
        with self.assertRaises(InvalidStep):
            onboarding.validate_step(step)

    def test_non_integer(self):
        """Step 1.5 does not exist."""
        with self.assertRaises(InvalidStep):
            onboarding.validate_step(1.5)

    def test_next_step(self):
        """The step after verification is the ``complete`` marker."""
        self.assertEqual(onboarding.next_step(0), 1)
        self.assertEqual(onboarding.next_step(2), 3)
        self.assertEqual(onboarding.next_step(3), COMPLETE)

    def test_parse_policy(self):
        """Policies are named in configuration."""
        self.assertIs(onboarding.parse_policy('strict-sequential'),
                      StepPolicy.STRICT_SEQUENTIAL)
        self.assertIs(onboarding.parse_policy(None), StepPolicy.ANY_ORDER)
        with self.assertRaises(ValueError):
            onboarding.parse_policy('whenever')


class TestInvalidStepDoesNotWrite(TestCase):
    """A rejected step never mutates the user record."""

    def setUp(self):
        self.app = Flask('test')
        self.app.config['SQLALCHEMY_DATABASE_URI'] = 'sqlite:///:memory:'
        self.app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
        util.init_app(self.app)
        self.ctx = self.app.app_context()
        self.ctx.push()
        util.create_all()
        self.user_id = make_user(util.current_session()).id

    def tearDown(self):
        util.drop_all()
        self.ctx.pop()

    @settings(max_examples=50)
    @given(step=st.one_of(st.integers().filter(lambda i: i < 0 or i > 3),
                          st.sampled_from([1.5, -0.5, 3.01, True, '1', None])),
           data=st.dictionaries(st.sampled_from(list(PERSONAL_INFO)),
                                st.text(max_size=10)))
    def test_out_of_range(self, step, data):
        """The record is unchanged, and no audit entry is written."""
        session = util.current_session()
        before = state_of(session.query(DBUser).get(self.user_id))
        with self.assertRaises(InvalidStep):
            onboarding.advance(self.user_id, step, data)
        session.expire_all()
        self.assertEqual(state_of(session.query(DBUser).get(self.user_id)),
                         before)
        self.assertEqual(session.query(DBAuditEvent).count(), 0)


class TestAdvance(TestCase):
    """Submitting onboarding steps."""

    def test_personal_info(self):
        """Step 0 stores the profile and moves the pointer to signature."""
        with temporary_db() as session:
            user_id = make_user(session).id
            step, next_step = onboarding.advance(
                user_id, 0, dict(PERSONAL_INFO, first_name='A')
            )
            self.assertEqual((step, next_step), (0, 1))

            db_user = session.query(DBUser).get(user_id)
            self.assertEqual(db_user.onboarding_current_step, 'signature')
            self.assertTrue(db_user.personal_info_completed)
            self.assertIsNotNone(db_user.personal_info_completed_at)
            self.assertEqual(db_user.first_name, 'A')
            self.assertEqual(db_user.eircode, 'T12 AB34')
            self.assertIsNone(db_user.address_line_2, 'Blank becomes null')
            self.assertEqual(db_user.onboarding_status, 'in_progress')

    def test_personal_info_replaces(self):
        """Fields left out of step 0 are cleared, not kept."""
        with temporary_db() as session:
            user_id = make_user(session).id
            onboarding.advance(user_id, 0, PERSONAL_INFO)
            onboarding.advance(user_id, 0, {'first_name': 'Aoife'})
            db_user = session.query(DBUser).get(user_id)
            self.assertEqual(db_user.first_name, 'Aoife')
            self.assertIsNone(db_user.last_name)
            self.assertIsNone(db_user.city)

    def test_personal_info_empty(self):
        """An empty object is accepted, and clears the profile."""
        with temporary_db() as session:
            user_id = make_user(session).id
            onboarding.advance(user_id, 0, {})
            db_user = session.query(DBUser).get(user_id)
            self.assertIsNone(db_user.first_name)
            self.assertTrue(db_user.personal_info_completed)

    def test_personal_info_requires_data(self):
        """Step 0 without data is rejected."""
        with temporary_db() as session:
            user_id = make_user(session).id
            with self.assertRaises(InvalidPayload):
                onboarding.advance(user_id, 0, None)
            with self.assertRaises(InvalidPayload):
                onboarding.advance(user_id, 0, ['Aoife'])
            with self.assertRaises(InvalidPayload):
                onboarding.advance(user_id, 0, {'first_name': 42})
            self.assertFalse(
                session.query(DBUser).get(user_id).personal_info_completed
            )

    def test_data_ignored_after_personal_info(self):
        """Whatever is sent as data with steps 1-3 is ignored."""
        with temporary_db() as session:
            user_id = make_user(session).id
            self.assertEqual(onboarding.advance(user_id, 1, 'garbage'), (1, 2))
            self.assertEqual(onboarding.advance(user_id, 2, [1]), (2, 3))
            self.assertEqual(onboarding.advance(user_id, 3, 42),
                             (3, COMPLETE))
            db_user = session.query(DBUser).get(user_id)
            self.assertTrue(db_user.signature_completed)
            self.assertTrue(db_user.legal_consent_completed)
            self.assertTrue(db_user.verification_completed)
            self.assertEqual(db_user.first_name, 'First')

    def test_idempotent(self):
        """Submitting step 0 twice is the same as submitting it once."""
        with temporary_db() as session:
            once = make_user(session, email='once@herit.ie').id
            twice = make_user(session, email='twice@herit.ie').id
            onboarding.advance(once, 0, PERSONAL_INFO)
            onboarding.advance(twice, 0, PERSONAL_INFO)
            onboarding.advance(twice, 0, PERSONAL_INFO)
            self.assertEqual(state_of(session.query(DBUser).get(once)),
                             state_of(session.query(DBUser).get(twice)))

    def test_verification(self):
        """The last step reports ``complete``."""
        with temporary_db() as session:
            user_id = make_user(session).id
            step, next_step = onboarding.advance(user_id, 3, {})
            self.assertEqual(step, 3)
            self.assertEqual(next_step, 'complete')
            db_user = session.query(DBUser).get(user_id)
            self.assertTrue(db_user.verification_completed)
            self.assertEqual(db_user.onboarding_current_step, 'completed')

    def test_steps_in_order(self):
        """The pointer follows the steps through to completed."""
        with temporary_db() as session:
            user_id = make_user(session).id
            expected = ['signature', 'legal_consent', 'verification',
                        'completed']
            for step, pointer in enumerate(expected):
                onboarding.advance(user_id, step, PERSONAL_INFO)
                self.assertEqual(
                    session.query(DBUser).get(user_id).onboarding_current_step,
                    pointer
                )

    def test_pointer_never_moves_back(self):
        """Resubmitting an earlier step leaves the pointer where it is."""
        with temporary_db() as session:
            user_id = make_user(session).id
            onboarding.advance(user_id, 2)
            onboarding.advance(user_id, 0, PERSONAL_INFO)
            db_user = session.query(DBUser).get(user_id)
            self.assertEqual(db_user.onboarding_current_step, 'verification')
            self.assertTrue(db_user.personal_info_completed)
            self.assertTrue(db_user.legal_consent_completed)
            self.assertFalse(db_user.signature_completed)

    def test_strict_sequential(self):
        """With the strict policy, steps can't be skipped."""
        with temporary_db() as session:
            user_id = make_user(session).id
            strict = StepPolicy.STRICT_SEQUENTIAL
            with self.assertRaises(StepOutOfOrder):
                onboarding.advance(user_id, 2, policy=strict)
            self.assertFalse(
                session.query(DBUser).get(user_id).legal_consent_completed
            )
            onboarding.advance(user_id, 0, PERSONAL_INFO, policy=strict)
            onboarding.advance(user_id, 1, policy=strict)
            onboarding.advance(user_id, 2, policy=strict)
            # Completed steps may be submitted again.
            onboarding.advance(user_id, 0, PERSONAL_INFO, policy=strict)

    def test_no_such_user(self):
        """Steps can only be submitted for a user who exists."""
        with temporary_db():
            with self.assertRaises(NoSuchUser):
                onboarding.advance('nobody', 1)

    def test_audit_entry(self):
        """Each completed step is written to the audit trail."""
        with temporary_db() as session:
            user_id = make_user(session).id
            onboarding.advance(user_id, 1)
            event = session.query(DBAuditEvent).one()
            self.assertEqual(event.user_id, user_id)
            self.assertEqual(event.event_type, 'user_action')
            self.assertEqual(event.event_action, 'onboarding_step_completed')
            self.assertEqual(event.resource_type, 'onboarding')
            self.assertEqual(event.resource_id, user_id)
            self.assertEqual(event.event_data['step'], 1)
            self.assertIn('completedAt', event.event_data)

    @mock.patch('herit.services.audit.transaction')
    def test_audit_failure_is_not_fatal(self, mock_transaction):
        """The step is recorded even if the audit trail is down."""
        mock_transaction.side_effect = RuntimeError('audit table is gone')
        with temporary_db() as session:
            user_id = make_user(session).id
            self.assertEqual(onboarding.advance(user_id, 1), (1, 2))
            self.assertTrue(
                session.query(DBUser).get(user_id).signature_completed
            )


class TestCompleteAndStatus(TestCase):
    """Finishing onboarding."""

    def test_incomplete(self):
        """Onboarding can't be finished with steps outstanding."""
        with temporary_db() as session:
            user_id = make_user(session).id
            onboarding.advance(user_id, 0, PERSONAL_INFO)
            onboarding.advance(user_id, 2)
            with self.assertRaises(IncompleteOnboarding) as ctx:
                onboarding.complete(user_id)
            self.assertEqual(ctx.exception.completion_status, {
                'personal_info_completed': True,
                'signature_completed': False,
                'legal_consent_completed': True,
                'verification_completed': False,
            })
            self.assertNotEqual(
                session.query(DBUser).get(user_id).onboarding_status,
                'completed'
            )

    def test_complete(self):
        """Once every step is done, onboarding is marked completed."""
        with temporary_db() as session:
            user_id = make_user(session).id
            for step in range(4):
                onboarding.advance(user_id, step, PERSONAL_INFO)
            user = onboarding.complete(user_id)
            self.assertEqual(user.onboarding.status, 'completed')
            self.assertTrue(user.onboarding.completed)
            first_completed_at = user.onboarding.completed_at
            self.assertIsNotNone(first_completed_at)

            again = onboarding.complete(user_id)
            self.assertEqual(again.onboarding.completed_at,
                             first_completed_at)

    @mock.patch(f'{onboarding.__name__}.audit')
    def test_complete_is_committed(self, mock_audit):
        """Completion is committed, not only flushed."""
        with temporary_db() as session:
            user_id = make_user(session).id
            for step in range(4):
                onboarding.advance(user_id, step, PERSONAL_INFO)
            onboarding.complete(user_id)
            session.rollback()
            db_user = session.query(DBUser).get(user_id)
            self.assertEqual(db_user.onboarding_status, 'completed')
            self.assertEqual(db_user.onboarding_current_step, 'completed')
            self.assertIsNotNone(db_user.onboarding_completed_at)

    def test_status(self):
        """Status reports the pointer and whether every step is done."""
        with temporary_db() as session:
            user_id = make_user(session, email='s@herit.ie').id
            onboarding.advance(user_id, 0, PERSONAL_INFO)
            status = onboarding.status(user_id)
            self.assertEqual(status['currentStep'], 'signature')
            self.assertEqual(status['onboardingStatus'], 'in_progress')
            self.assertFalse(status['isComplete'])
            self.assertEqual(status['user']['email'], 's@herit.ie')
            self.assertEqual(status['user']['firstName'], 'Aoife')
