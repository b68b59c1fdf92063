"""
Tests unitaires pour la machine d'états du poste de scan.
Couverture : sélection caméra, démarrage, QR illisible, cooldown de 6h,
inscription introuvable, email différent, succès, validation unique en cours,
reset, fermeture, scénario complet inscription → scan → re-scan.
"""

import json
import threading
import uuid
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from eventcheckin.models.registration import Registration
from eventcheckin.scanner.camera import CameraDevice, CameraError
from eventcheckin.scanner.session import DEBUG_LOG_SIZE, ScannerSession, ScannerState
from eventcheckin.schemas.check_in import CheckInEvent, CheckInResult
from eventcheckin.schemas.registration import RegistrationCreate
from eventcheckin.services import check_in_service, registration_service
from eventcheckin.services.cooldown_cache import CooldownEntry, InMemoryCooldownCache
from eventcheckin.services.errors import EmailMismatchError, RegistrationNotFoundError
from eventcheckin.services.qr_payload import encode_payload

NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)


# ----------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------

class FakeCamera:
    """Caméra factice : enregistre start/stop, ne décode rien d'elle-même."""

    def __init__(self, devices=None, fail_start=None):
        self.devices = devices if devices is not None else [
            CameraDevice(id=0, label="Camera 0"),
            CameraDevice(id=1, label="Camera 1"),
        ]
        self.fail_start = fail_start
        self.running = False
        self.started_with = None
        self.stop_calls = 0

    def list_devices(self):
        return self.devices

    def start(self, device_id, config, on_success, on_error):
        if self.fail_start:
            raise self.fail_start
        self.running = True
        self.started_with = device_id
        self.config = config

    def stop(self):
        self.running = False
        self.stop_calls += 1


def make_result(reg_id, total=1) -> CheckInResult:
    return CheckInResult(
        registration_id=reg_id,
        first_name="Ada",
        last_name="Lovelace",
        phone="555-0100",
        email="ada@x.com",
        total_check_ins=total,
        last_check_in=CheckInEvent(timestamp="2026-10-18T12:00:00.000Z", date="10/18/26", time="12:00:00"),
    )


def make_text(reg_id, email="ada@x.com") -> str:
    return encode_payload(reg_id, "Ada", "Lovelace", "555-0100", email)


def make_session(validator=None, cache=None, camera=None, clock=None):
    session = ScannerSession(
        camera=camera or FakeCamera(),
        validator=validator or MagicMock(side_effect=lambda p: make_result(uuid.UUID(p.id))),
        cache=cache or InMemoryCooldownCache(),
        clock=clock or (lambda: NOW),
    )
    session.load_cameras()
    return session


def scan(session, text):
    """Simule un QR code décodé par la boucle caméra et attend la fin de la validation."""
    future = session.handle_decoded(text)
    assert future is not None
    return future.result(timeout=5)


@pytest.fixture
def session():
    s = make_session()
    yield s
    s.close()


# ============================================================
# Caméras et démarrage
# ============================================================

class TestDemarrage:
    def test_derniere_camera_selectionnee_par_defaut(self, session):
        assert session.selected_camera == 1

    def test_aucune_camera_trouvee(self):
        s = make_session(camera=FakeCamera(devices=[]))
        s.start()

        assert s.selected_camera is None
        assert s.state == ScannerState.IDLE
        assert "Aucune caméra" in s.error
        s.close()

    def test_start_lance_la_camera_selectionnee(self, session):
        session.select_camera(0)
        session.start()

        assert session.state == ScannerState.SCANNING
        assert session.camera.running is True
        assert session.camera.started_with == 0
        assert session.camera.config.fps == 10
        assert session.camera.config.qrbox == 250

    def test_echec_ouverture_camera_retour_idle(self):
        s = make_session(camera=FakeCamera(fail_start=CameraError("Permission refusée")))
        s.start()

        assert s.state == ScannerState.IDLE
        assert "Permission refusée" in s.error
        s.close()

    def test_decodage_hors_scanning_ignore(self, session):
        assert session.handle_decoded(make_text(uuid.uuid4())) is None
        session.validator.assert_not_called()

    def test_echec_de_decodage_sans_erreur_operateur(self, session):
        session.start()
        session.handle_decode_error("Aucun QR code détecté.")

        assert session.state == ScannerState.SCANNING
        assert session.error is None


# ============================================================
# Validation
# ============================================================

class TestValidation:
    def test_qr_illisible_reste_en_scanning(self, session):
        session.start()
        result = scan(session, "pas du json")

        assert result is None
        assert session.state == ScannerState.SCANNING
        assert "Format de QR code invalide" in session.error
        assert session.camera.running is True
        session.validator.assert_not_called()

    def test_succes_arrete_la_camera_et_ecrit_le_cooldown(self, session):
        reg_id = uuid.uuid4()
        session.start()

        result = scan(session, make_text(reg_id))

        assert result.registration_id == reg_id
        assert session.state == ScannerState.SUCCESS
        assert session.result == result
        assert session.camera.running is False
        assert session.alert.description == "Bienvenue Ada Lovelace"
        entry = session.cache.get(str(reg_id))
        assert entry.timestamp == NOW
        assert entry.first_name == "Ada"
        assert entry.last_name == "Lovelace"

    def test_deja_scanne_sans_requete_base(self):
        reg_id = uuid.uuid4()
        cache = InMemoryCooldownCache()
        cache.set(str(reg_id), CooldownEntry(timestamp=NOW - timedelta(hours=1)))
        s = make_session(cache=cache)
        s.start()

        result = scan(s, make_text(reg_id))

        assert result is None
        assert s.state == ScannerState.SCANNING
        assert s.camera.running is True
        assert s.alert.title == "Déjà scanné"
        assert "6 heures" in s.alert.description
        s.validator.assert_not_called()
        s.close()

    def test_cooldown_expire_scan_accepte_et_compteur_incremente(self):
        """Re-scan après 6h : check-in enregistré, total passe de N à N+1."""
        reg_id = uuid.uuid4()
        stored = Registration(
            id=reg_id, first_name="Ada", last_name="Lovelace", phone="555-0100",
            email="ada@x.com", status="active", total_check_ins=3,
        )
        db = MagicMock()
        db.get.side_effect = lambda model, key: stored if key == reg_id else None
        counter = {"total": 3}

        def fake_increment_refresh(obj):
            counter["total"] += 1
            obj.total_check_ins = counter["total"]

        db.refresh.side_effect = fake_increment_refresh

        cache = InMemoryCooldownCache()
        cache.set(str(reg_id), CooldownEntry(timestamp=NOW - timedelta(hours=6, minutes=1)))
        s = make_session(
            validator=lambda payload: check_in_service.check_in(db, payload, now=NOW),
            cache=cache,
        )
        s.start()

        result = scan(s, make_text(reg_id))

        assert result.total_check_ins == 4
        assert counter["total"] == 4
        assert s.state == ScannerState.SUCCESS
        db.commit.assert_called_once()
        assert cache.get(str(reg_id)).timestamp == NOW
        s.close()

    def test_inscription_introuvable_rejet_sans_cooldown(self):
        reg_id = uuid.uuid4()
        validator = MagicMock(side_effect=RegistrationNotFoundError("Inscription introuvable dans la base de données."))
        s = make_session(validator=validator)
        s.start()

        scan(s, make_text(reg_id))

        assert s.state == ScannerState.REJECTED
        assert "introuvable" in s.error
        assert s.camera.running is False
        assert s.cache.get(str(reg_id)) is None
        s.close()

    def test_email_different_rejet(self):
        validator = MagicMock(side_effect=EmailMismatchError("QR code invalide : l'email ne correspond pas à l'inscription."))
        s = make_session(validator=validator)
        s.start()

        scan(s, make_text(uuid.uuid4(), email="mallory@x.com"))

        assert s.state == ScannerState.REJECTED
        assert "ne correspond pas" in s.error
        assert s.result is None
        s.close()

    def test_base_indisponible_rejet_avec_message(self):
        validator = MagicMock(side_effect=OperationalError("SELECT", {}, Exception("connexion refusée")))
        s = make_session(validator=validator)
        s.start()

        scan(s, make_text(uuid.uuid4()))

        assert s.state == ScannerState.REJECTED
        assert "connexion refusée" in s.error
        s.close()

    def test_une_seule_validation_en_cours(self):
        release = threading.Event()
        entered = threading.Event()

        def slow_validator(payload):
            entered.set()
            release.wait(timeout=5)
            return make_result(uuid.UUID(payload.id))

        validator = MagicMock(side_effect=slow_validator)
        s = make_session(validator=validator)
        s.start()
        text = make_text(uuid.uuid4())

        first = s.handle_decoded(text)
        assert entered.wait(timeout=5)
        second = s.handle_decoded(text)
        release.set()
        first.result(timeout=5)

        assert second is None
        validator.assert_called_once()
        assert s.state == ScannerState.SUCCESS
        s.close()


# ============================================================
# Reset et fermeture
# ============================================================

class TestReset:
    def test_reset_retour_idle_et_effacement(self, session):
        session.start()
        scan(session, make_text(uuid.uuid4()))

        session.reset()

        assert session.state == ScannerState.IDLE
        assert session.result is None
        assert session.error is None
        assert session.alert is None
        assert list(session.debug_log) == []
        assert session.camera.running is False

    def test_reset_pendant_le_scan_arrete_la_camera(self, session):
        session.start()
        session.reset()

        assert session.camera.running is False
        assert session.state == ScannerState.IDLE

    def test_reset_pendant_une_validation_lente(self):
        """La validation en cours au moment du reset n'agit pas sur la session redémarrée."""
        release = threading.Event()
        entered = threading.Event()

        def slow_validator(payload):
            if not release.is_set():
                entered.set()
                release.wait(timeout=5)
            return make_result(uuid.UUID(payload.id))

        camera = FakeCamera()
        s = make_session(validator=MagicMock(side_effect=slow_validator), camera=camera)
        s.start()
        stale_id = uuid.uuid4()

        pending = s.handle_decoded(make_text(stale_id))
        assert entered.wait(timeout=5)
        s.reset()
        s.start()
        stops_after_restart = camera.stop_calls

        release.set()
        pending.result(timeout=5)

        assert s.state == ScannerState.SCANNING
        assert camera.running is True
        assert camera.stop_calls == stops_after_restart
        assert s.result is None
        assert s.alert is None
        # Le check-in a bien eu lieu en base : le cooldown du poste est écrit
        assert s.cache.get(str(stale_id)) is not None

        # La nouvelle session valide normalement
        assert scan(s, make_text(uuid.uuid4())) is not None
        assert s.state == ScannerState.SUCCESS
        s.close()

    def test_journal_de_diagnostic_borne(self, session):
        """Un code illisible laissé devant la caméra ne fait pas grossir le journal sans fin."""
        session.start()
        for _ in range(DEBUG_LOG_SIZE + 50):
            scan(session, "pas du json")

        assert len(session.debug_log) == DEBUG_LOG_SIZE
        assert session.state == ScannerState.SCANNING

    def test_nouveau_start_necessaire_apres_succes(self, session):
        session.start()
        scan(session, make_text(uuid.uuid4()))

        assert session.handle_decoded(make_text(uuid.uuid4())) is None

    def test_fermeture_par_context_manager(self):
        camera = FakeCamera()
        with make_session(camera=camera) as s:
            s.start()
            assert camera.running is True

        assert camera.running is False


# ============================================================
# Scénario complet
# ============================================================

def test_scenario_inscription_scan_puis_rescan_immediat():
    """
    Ada/Lovelace/555-0100/ada@x.com : inscription → identifiant I, 0 check-in ;
    scan → succès, 1 check-in ; re-scan immédiat → déjà scanné, toujours 1.
    """
    reg_id = uuid.uuid4()
    registration_db = MagicMock()
    registration_db.execute.return_value.scalars.return_value.first.return_value = None

    def fake_register_refresh(obj):
        obj.id = reg_id
        obj.created_at = NOW

    registration_db.refresh.side_effect = fake_register_refresh

    created = registration_service.register(
        registration_db,
        RegistrationCreate(first_name="Ada", last_name="Lovelace", phone="555-0100", email="ada@x.com"),
    )
    stored: Registration = registration_db.add.call_args.args[0]
    assert created.registration.id == reg_id
    assert created.registration.total_check_ins == 0

    # Base partagée : le poste de scan retrouve l'inscription stockée
    check_in_db = MagicMock()
    check_in_db.get.side_effect = lambda model, key: stored if key == reg_id else None
    counter = {"total": stored.total_check_ins}

    def fake_increment_refresh(obj):
        counter["total"] += 1
        obj.total_check_ins = counter["total"]

    check_in_db.refresh.side_effect = fake_increment_refresh

    s = ScannerSession(
        camera=FakeCamera(),
        validator=lambda payload: check_in_service.check_in(check_in_db, payload, now=NOW),
        cache=InMemoryCooldownCache(),
        clock=lambda: NOW,
    )
    s.load_cameras()

    s.start()
    result = scan(s, created.qr_payload)
    assert result.total_check_ins == 1
    assert stored.last_check_in is not None
    assert s.state == ScannerState.SUCCESS

    s.reset()
    s.start()
    assert scan(s, created.qr_payload) is None
    assert s.alert.title == "Déjà scanné"
    assert counter["total"] == 1
    assert check_in_db.get.call_count == 1
    assert json.loads(created.qr_payload)["id"] == str(reg_id)
    s.close()
