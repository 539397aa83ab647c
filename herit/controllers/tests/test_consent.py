"""Tests for :mod:`herit.controllers.consent` and :mod:`.audit`."""

from unittest import TestCase, mock
from datetime import datetime
from http import HTTPStatus as status

from pytz import UTC
from werkzeug.exceptions import BadRequest, Unauthorized

from ... import domain
from ...services.exceptions import InvalidSignature, StepOutOfOrder, \
    MissingConsents, NoSuchUser
from ..consent import sign_consent, get_consents, save_signature, \
    get_signature, complete_legal_consent
from ..audit import log_event

ANY_ORDER = domain.StepPolicy.ANY_ORDER
SIGNED_AT = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class TestSignConsent(TestCase):
    """Tests for :func:`.sign_consent`."""

    @mock.patch(f'{sign_consent.__module__}.consents')
    def test_sign(self, mock_consents):
        """The signed consent and its timestamp are returned."""
        mock_consents.sign_consent.return_value = domain.ConsentRecord(
            agreed=True, signature_id='sig-1', signature_snapshot='x',
            timestamp=SIGNED_AT
        )
        context = domain.RequestContext('1.2.3.4', 'UA')
        body = {'consentId': 'terms', 'signatureId': 'sig-1',
                'signatureData': 'x'}
        data, code, _ = sign_consent('u1', body, context)
        self.assertEqual(code, status.OK)
        self.assertEqual(data['consentId'], 'terms')
        self.assertEqual(data['timestamp'], SIGNED_AT.isoformat())
        mock_consents.sign_consent.assert_called_once_with(
            'u1', 'terms', 'sig-1', 'x', context=context
        )

    @mock.patch(f'{sign_consent.__module__}.consents')
    def test_missing_ids(self, mock_consents):
        """Both identifiers are required."""
        mock_consents.sign_consent.side_effect = InvalidSignature('nope')
        with self.assertRaises(BadRequest) as ctx:
            sign_consent('u1', {'consentId': 'terms'})
        self.assertEqual(ctx.exception.description,
                         'Consent ID and signature ID are required')
        with self.assertRaises(BadRequest):
            sign_consent('u1', None)


class TestGetConsents(TestCase):
    """Tests for :func:`.get_consents`."""

    @mock.patch(f'{get_consents.__module__}.accounts')
    def test_get(self, mock_accounts):
        """Consents are listed with the completion of the consent step."""
        record = domain.ConsentRecord(agreed=True, signature_id='sig-1',
                                      signature_snapshot=None,
                                      timestamp=SIGNED_AT)
        mock_accounts.get_user_by_id.return_value = domain.User(
            user_id='u1', email='a@herit.ie',
            onboarding=domain.OnboardingProgress(legal_consent_completed=True),
            legal_consents={'terms': record}
        )
        data, code, _ = get_consents('u1')
        self.assertEqual(code, status.OK)
        self.assertTrue(data['isCompleted'])
        self.assertEqual(data['consents']['terms']['signatureId'], 'sig-1')



class TestCompleteLegalConsent(TestCase):
    """Tests for :func:`.complete_legal_consent`."""

    @mock.patch(f'{complete_legal_consent.__module__}.consents')
    def test_complete(self, mock_consents):
        """The step is completed and the next one is named."""
        mock_consents.complete_legal_consent.return_value = (2, 3)
        context = domain.RequestContext('1.2.3.4', 'UA')
        data, code, _ = complete_legal_consent('u1', ANY_ORDER, context)
        self.assertEqual(code, status.OK)
        self.assertEqual(data, {
            'success': True,
            'message': 'Legal consent saved successfully',
            'step': 2,
            'nextStep': 3,
        })
        mock_consents.complete_legal_consent.assert_called_once_with(
            'u1', policy=ANY_ORDER, context=context
        )

    @mock.patch(f'{complete_legal_consent.__module__}.consents')
    def test_rejected(self, mock_consents):
        """Unsigned consents and skipped steps are a bad request."""
        for exc in (MissingConsents('Required consents missing: '
                                    'privacy_policy', ['privacy_policy']),
                    StepOutOfOrder('Step 0 must be completed before step 2')):
            mock_consents.complete_legal_consent.side_effect = exc
            with self.assertRaises(BadRequest) as ctx:
                complete_legal_consent('u1', ANY_ORDER)
            self.assertEqual(ctx.exception.description, str(exc))

    @mock.patch(f'{complete_legal_consent.__module__}.consents')
    def test_no_such_user(self, mock_consents):
        """A session for a deleted user is not authenticated."""
        mock_consents.complete_legal_consent.side_effect = NoSuchUser('gone')
        with self.assertRaises(Unauthorized):
            complete_legal_consent('u1', ANY_ORDER)


class TestSignatures(TestCase):
    """Tests for :func:`.save_signature` and :func:`.get_signature`."""

    @mock.patch(f'{save_signature.__module__}.signatures')
    def test_save(self, mock_signatures):
        """The saved signature is returned."""
        mock_signatures.save_signature.return_value = domain.Signature(
            signature_id='sig-1', name='A', signature_type='typed', data='A',
            created_at=SIGNED_AT
        )
        body = {'name': 'A', 'signatureType': 'typed', 'signatureData': 'A'}
        data, code, _ = save_signature('u1', body, ANY_ORDER)
        self.assertEqual(code, status.OK)
        self.assertEqual(data['signature']['id'], 'sig-1')
        self.assertEqual(data['signature']['createdAt'],
                         SIGNED_AT.isoformat())

    @mock.patch(f'{save_signature.__module__}.signatures')
    def test_rejected(self, mock_signatures):
        """Service errors are a bad request."""
        for exc in (InvalidSignature('Required fields missing'),
                    StepOutOfOrder('Step 0 must be completed before step 1')):
            mock_signatures.save_signature.side_effect = exc
            with self.assertRaises(BadRequest) as ctx:
                save_signature('u1', {'name': 'A'}, ANY_ORDER)
            self.assertEqual(ctx.exception.description, str(exc))

    @mock.patch(f'{get_signature.__module__}.signatures')
    def test_get_none(self, mock_signatures):
        """Users who haven't signed get ``null``."""
        mock_signatures.get_latest_signature.return_value = None
        data, code, _ = get_signature('u1')
        self.assertEqual(code, status.OK)
        self.assertIsNone(data['signature'])


class TestLogEvent(TestCase):
    """Tests for :func:`.log_event`."""

    @mock.patch(f'{log_event.__module__}.audit')
    def test_log(self, mock_audit):
        """Events are written on behalf of the session user."""
        start = datetime.now(tz=UTC)
        session = domain.Session(user_id='u1', email='a@herit.ie',
                                 session_version=1, issued_at=start,
                                 end_time=start)
        data, code, _ = log_event({'event_type': 'page_view',
                                   'event_data': {'page': '/'}}, session)
        self.assertEqual((data, code), ({'success': True}, status.OK))
        mock_audit.log_event.assert_called_once_with(
            'page_view', event_action=None, resource_type=None,
            resource_id=None, event_data={'page': '/'}, user_id='u1',
            context=None
        )

    @mock.patch(f'{log_event.__module__}.audit')
    def test_always_succeeds(self, mock_audit):
        """Malformed events are dropped, but the client isn't told."""
        for body in (None, 'foo', {}, {'event_type': 'x', 'event_data': 1}):
            data, code, _ = log_event(body)
            self.assertEqual((data, code), ({'success': True}, status.OK))
        mock_audit.log_event.assert_not_called()

        mock_audit.log_event.return_value = False
        data, _, _ = log_event({'event_type': 'page_view'})
        self.assertTrue(data['success'])
