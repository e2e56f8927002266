import threading

import pytest
from fastapi import BackgroundTasks

from vaxtracker.api.deps import get_notifier
from vaxtracker.core.config import settings
from vaxtracker.core.exceptions import ConflictError
from vaxtracker.core.security import UserRole
from vaxtracker.main import app
from vaxtracker.models.appointment import Appointment, AppointmentStatus
from vaxtracker.models.user import User
from vaxtracker.services.booking_service import BookingService, send_booking_notice

from .conftest import RecordingNotifier, TestingSessionLocal, auth_headers, at


def book(client, user, hospital, vaccine, start_at):
    return client.post(
        "/api/v1/appointments",
        json={"hospitalId": hospital.id, "vaccineId": vaccine.id, "startAt": start_at},
        headers=auth_headers(user),
    )


def set_status(db, appointment_id, status):
    db.query(Appointment).filter(Appointment.id == appointment_id).update(
        {Appointment.status: status}, synchronize_session=False
    )
    db.commit()


class TestBookAppointment:

    def test_book_slot(self, client, patient, hospital, vaccine):
        """Hospital charge 20 + vaccine price 15, first dose of two."""
        response = book(client, patient, hospital, vaccine, at("10:00"))
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "SCHEDULED"
        assert data["startAt"] == at("10:00")
        assert data["endAt"] == at("10:30")
        assert data["durationMin"] == 30
        assert data["charges"] == 35.0
        assert data["doseNumber"] == 1
        assert data["dosesRequired"] == 2
        assert data["patientId"] == patient.id
        assert data["notes"][0]["by"] == "system"
        assert data["notes"][0]["message"] == "Booked by patient"

    def test_offset_instant_is_normalized(self, client, patient, hospital, vaccine):
        response = book(client, patient, hospital, vaccine, "2030-01-15T12:00:00+02:00")
        assert response.status_code == 201
        assert response.json()["startAt"] == at("10:00")

    def test_last_slot_of_day(self, client, patient, hospital, vaccine):
        response = book(client, patient, hospital, vaccine, at("17:30"))
        assert response.status_code == 201
        assert response.json()["endAt"] == at("18:00")

    @pytest.mark.parametrize("hhmm", ["08:30", "18:00", "17:45"])
    def test_outside_window(self, client, patient, hospital, vaccine, hhmm):
        response = book(client, patient, hospital, vaccine, at(hhmm))
        assert response.status_code == 400
        assert response.json()["detail"] == "startAt outside allowed window (09:00-18:00)"

    def test_invalid_start(self, client, patient, hospital, vaccine):
        response = book(client, patient, hospital, vaccine, "next tuesday")
        assert response.status_code == 400
        assert response.json()["detail"] == "invalid startAt"

    def test_unapproved_patient(self, client, make_user, hospital, vaccine):
        pending = make_user(approved=False)
        response = book(client, pending, hospital, vaccine, at("10:00"))
        assert response.status_code == 403
        assert response.json()["detail"] == "user not approved yet"

    def test_unapproved_hospital(self, client, patient, make_hospital, vaccine):
        hospital = make_hospital(approved=False)
        response = book(client, patient, hospital, vaccine, at("10:00"))
        assert response.status_code == 403
        assert response.json()["detail"] == "hospital not approved"

    def test_missing_hospital(self, client, patient, vaccine):
        response = client.post(
            "/api/v1/appointments",
            json={"hospitalId": 999, "vaccineId": vaccine.id, "startAt": at("10:00")},
            headers=auth_headers(patient),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "hospital not found"

    def test_missing_vaccine(self, client, patient, hospital):
        response = client.post(
            "/api/v1/appointments",
            json={"hospitalId": hospital.id, "vaccineId": 999, "startAt": at("10:00")},
            headers=auth_headers(patient),
        )
        assert response.status_code == 404
        assert response.json()["detail"] == "vaccine not found"

    def test_checks_run_in_order(self, client, make_user, vaccine):
        """An unapproved patient is rejected before the hospital is looked up."""
        pending = make_user(approved=False)
        response = client.post(
            "/api/v1/appointments",
            json={"hospitalId": 999, "vaccineId": vaccine.id, "startAt": "garbage"},
            headers=auth_headers(pending),
        )
        assert response.status_code == 403

    def test_missing_fields(self, client, patient):
        response = client.post(
            "/api/v1/appointments", json={"hospitalId": 1}, headers=auth_headers(patient)
        )
        assert response.status_code == 400

    def test_requires_login(self, client, hospital, vaccine):
        response = client.post(
            "/api/v1/appointments",
            json={"hospitalId": hospital.id, "vaccineId": vaccine.id, "startAt": at("10:00")},
        )
        assert response.status_code == 401

    def test_admin_cannot_book(self, client, admin, hospital, vaccine):
        response = book(client, admin, hospital, vaccine, at("10:00"))
        assert response.status_code == 403

    def test_double_booking(self, client, make_user, hospital, vaccine):
        first, second = make_user(), make_user()
        assert book(client, first, hospital, vaccine, at("10:00")).status_code == 201

        response = book(client, second, hospital, vaccine, at("10:00"))
        assert response.status_code == 409
        assert response.json()["detail"] == "slot already booked"

    def test_same_time_other_hospital(self, client, patient, hospital, vaccine, make_hospital):
        other = make_hospital(name="Aurora Community Clinic")
        assert book(client, patient, hospital, vaccine, at("10:00")).status_code == 201
        assert book(client, patient, other, vaccine, at("10:00")).status_code == 201

    def test_charges_are_snapshotted(self, client, db, patient, hospital, vaccine):
        appointment_id = book(client, patient, hospital, vaccine, at("10:00")).json()["id"]

        vaccine.price = 99
        hospital.charge = 50
        db.commit()

        appointments = client.get(
            "/api/v1/appointments/my", headers=auth_headers(patient)
        ).json()["appointments"]
        assert appointments[0]["id"] == appointment_id
        assert appointments[0]["charges"] == 35.0

    def test_failing_notifier_does_not_fail_booking(self, client, patient, hospital, vaccine):
        class BrokenNotifier:
            def notify_booking(self, **kwargs):
                raise RuntimeError("smtp down")

        app.dependency_overrides[get_notifier] = lambda: BrokenNotifier()
        try:
            response = book(client, patient, hospital, vaccine, at("10:00"))
        finally:
            app.dependency_overrides.pop(get_notifier, None)

        assert response.status_code == 201

    @pytest.mark.parametrize("start_at, detail", [
        ("9999-12-31T23:45:00Z", "startAt outside allowed window (09:00-18:00)"),
        ("0001-01-01T00:00:00+01:00", "invalid startAt"),
    ])
    def test_calendar_edges(self, client, patient, hospital, vaccine, start_at, detail):
        response = book(client, patient, hospital, vaccine, start_at)
        assert response.status_code == 400
        assert response.json()["detail"] == detail

    def test_hospital_role_cannot_book(self, client, make_user, hospital, vaccine):
        staff = make_user(role=UserRole.HOSPITAL)
        response = book(client, staff, hospital, vaccine, at("10:00"))
        assert response.status_code == 403


class TestBookingNotification:

    def test_email_sent_after_response(self, client, patient, hospital, vaccine):
        notifier = RecordingNotifier()
        app.dependency_overrides[get_notifier] = lambda: notifier
        try:
            response = book(client, patient, hospital, vaccine, at("10:00"))
        finally:
            app.dependency_overrides.pop(get_notifier, None)

        assert response.status_code == 201
        assert len(notifier.sent) == 1
        kind, message = notifier.sent[0]
        assert kind == "booking"
        assert message["appointment_id"] == response.json()["id"]
        assert message["start_at_iso"] == at("10:00")
        assert message["patient_email"] == patient.email

    def test_email_is_queued_not_sent(self, db, patient, hospital, vaccine):
        """With background tasks the booking returns before any email goes out."""
        notifier = RecordingNotifier()
        tasks = BackgroundTasks()

        appointment = BookingService(db, settings, notifier, tasks).book(
            patient, hospital.id, vaccine.id, at("10:00")
        )

        assert notifier.sent == []
        assert len(tasks.tasks) == 1
        task = tasks.tasks[0]
        assert task.func is send_booking_notice

        task.func(*task.args, **task.kwargs)
        assert notifier.sent[0][1]["appointment_id"] == appointment.id

    def test_failing_queued_email_is_logged(self):
        class BrokenNotifier:
            def notify_booking(self, **kwargs):
                raise RuntimeError("smtp down")

        # Must not raise
        send_booking_notice(BrokenNotifier(), {"appointment_id": 1})


class TestDoseSequence:

    def test_dose_follows_completed_history(self, client, db, patient, hospital, vaccine):
        first = book(client, patient, hospital, vaccine, at("10:00")).json()
        assert first["doseNumber"] == 1

        # Booked but not completed does not advance the sequence
        assert book(client, patient, hospital, vaccine, at("11:00")).json()["doseNumber"] == 1

        set_status(db, first["id"], AppointmentStatus.COMPLETED)
        second = book(client, patient, hospital, vaccine, at("12:00")).json()
        assert second["doseNumber"] == 2

        set_status(db, second["id"], AppointmentStatus.COMPLETED)
        response = book(client, patient, hospital, vaccine, at("13:00"))
        assert response.status_code == 409
        assert response.json()["detail"] == "all required doses already completed"

    def test_single_dose_vaccine(self, client, db, patient, hospital, make_vaccine):
        vaccine = make_vaccine(doses_required=1)
        first = book(client, patient, hospital, vaccine, at("10:00")).json()
        set_status(db, first["id"], AppointmentStatus.COMPLETED)

        assert book(client, patient, hospital, vaccine, at("11:00")).status_code == 409

    def test_sequence_is_per_vaccine(self, client, db, patient, hospital, vaccine, make_vaccine):
        first = book(client, patient, hospital, vaccine, at("10:00")).json()
        set_status(db, first["id"], AppointmentStatus.COMPLETED)

        other = make_vaccine()
        assert book(client, patient, hospital, other, at("11:00")).json()["doseNumber"] == 1


class TestMyAppointments:

    def test_chronological_with_names(self, client, patient, hospital, vaccine):
        book(client, patient, hospital, vaccine, at("15:00"))
        book(client, patient, hospital, vaccine, at("09:00"))

        response = client.get("/api/v1/appointments/my", headers=auth_headers(patient))
        assert response.status_code == 200

        appointments = response.json()["appointments"]
        assert [a["startAt"] for a in appointments] == [at("09:00"), at("15:00")]
        assert appointments[0]["hospital"]["name"] == hospital.name
        assert appointments[0]["vaccine"]["name"] == vaccine.name

    def test_only_own_appointments(self, client, make_user, hospital, vaccine):
        first, second = make_user(), make_user()
        book(client, first, hospital, vaccine, at("10:00"))

        response = client.get("/api/v1/appointments/my", headers=auth_headers(second))
        assert response.json()["appointments"] == []


class TestCancelAppointment:

    def test_cancel_frees_slot(self, client, make_user, hospital, vaccine):
        first, second = make_user(), make_user()
        appointment_id = book(client, first, hospital, vaccine, at("10:00")).json()["id"]

        response = client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel", headers=auth_headers(first)
        )
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "CANCELLED_PATIENT"
        assert data["notes"][-1]["by"] == "patient"
        assert data["notes"][-1]["message"] == "Cancelled by patient"

        assert book(client, second, hospital, vaccine, at("10:00")).status_code == 201

    def test_cancel_twice(self, client, patient, hospital, vaccine):
        appointment_id = book(client, patient, hospital, vaccine, at("10:00")).json()["id"]
        url = f"/api/v1/appointments/{appointment_id}/cancel"

        client.patch(url, headers=auth_headers(patient))
        response = client.patch(url, headers=auth_headers(patient))
        assert response.status_code == 409

    def test_cancel_other_patients_appointment(self, client, make_user, hospital, vaccine):
        owner, other = make_user(), make_user()
        appointment_id = book(client, owner, hospital, vaccine, at("10:00")).json()["id"]

        response = client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel", headers=auth_headers(other)
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "not your appointment"

    def test_cancel_completed(self, client, db, patient, hospital, vaccine):
        appointment_id = book(client, patient, hospital, vaccine, at("10:00")).json()["id"]
        set_status(db, appointment_id, AppointmentStatus.COMPLETED)

        response = client.patch(
            f"/api/v1/appointments/{appointment_id}/cancel", headers=auth_headers(patient)
        )
        assert response.status_code == 409

    def test_cancel_missing(self, client, patient):
        response = client.patch("/api/v1/appointments/999/cancel", headers=auth_headers(patient))
        assert response.status_code == 404


class TestConcurrentBooking:

    def test_one_winner_per_slot(self, db, make_user, hospital, vaccine, notifier):
        """Parallel bookings of one slot, each on its own session: exactly one commits."""
        patient_ids = [make_user().id for _ in range(4)]
        hospital_id, vaccine_id = hospital.id, vaccine.id
        results = []
        barrier = threading.Barrier(len(patient_ids))

        def attempt(patient_id):
            session = TestingSessionLocal()
            try:
                patient = session.query(User).filter(User.id == patient_id).one()
                service = BookingService(session, settings, notifier)
                barrier.wait()
                service.book(patient, hospital_id, vaccine_id, at("10:00"))
                results.append("ok")
            except ConflictError as exc:
                results.append(exc.detail)
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(pid,)) for pid in patient_ids]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count("ok") == 1
        assert results.count("slot already booked") == len(patient_ids) - 1

        live = db.query(Appointment).filter(
            Appointment.hospital_id == hospital.id,
            Appointment.status == AppointmentStatus.SCHEDULED,
        ).count()
        assert live == 1
