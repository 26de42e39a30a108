from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from medicare.auth.jwt_handler import create_access_token
from medicare.database import get_db
from medicare.main import app
from medicare.models.appointment import Appointment
from medicare.models.doctor import Doctor
from medicare.services.mailer import get_email_sender
from medicare.services.notifications import create_notification


def _next_weekday(weekday: int) -> date:
    day = date.today() + timedelta(days=7)
    while day.weekday() != weekday:
        day += timedelta(days=1)
    return day


@pytest.fixture
def client(db, email_sender):
    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_email_sender] = lambda: email_sender
    try:
        yield TestClient(app, raise_server_exceptions=False)
    finally:
        app.dependency_overrides.clear()


def _headers(user_id: int, role: str) -> dict:
    return {'Authorization': f'Bearer {create_access_token(user_id, role)}'}


def test_root_reports_health(client) -> None:
    response = client.get('/')

    assert response.status_code == 200
    assert response.json() == {'status': 'MediCare Plus API Running'}


def test_auth_me_echoes_principal(client) -> None:
    response = client.get('/auth/me', headers=_headers(7, 'patient'))

    assert response.status_code == 200
    assert response.json() == {'success': True, 'message': '', 'data': {'user_id': 7, 'role': 'patient'}}


def test_invalid_token_returns_error_envelope(client) -> None:
    response = client.get('/auth/me', headers={'Authorization': 'Bearer not-a-token'})

    assert response.status_code == 401
    assert response.json() == {'success': False, 'message': 'Invalid token'}


def test_missing_token_is_rejected(client) -> None:
    response = client.get('/auth/me')

    assert response.status_code in (401, 403)
    assert response.json()['success'] is False


def test_available_slots_route_lists_slots(client, make_doctor, make_patient) -> None:
    doctor = make_doctor()
    patient = make_patient()
    tuesday = _next_weekday(1)

    response = client.get(
        f'/appointments/available-slots/{doctor.id}',
        params={'date': tuesday.isoformat()},
        headers=_headers(patient.user_id, 'patient'),
    )

    assert response.status_code == 200
    body = response.json()
    assert body['success'] is True
    assert body['data']['doctor_id'] == doctor.id
    assert [slot['time'] for slot in body['data']['slots']] == ['09:00', '09:30', '10:00', '10:30', '11:00', '11:30']


def test_book_appointment_route_returns_created_envelope(client, db, make_doctor, make_patient, email_sender) -> None:
    doctor = make_doctor()
    patient = make_patient()
    payload = {
        'doctor_id': doctor.id,
        'appointment_date': _next_weekday(1).isoformat(),
        'appointment_time': '10:00',
        'reason_for_visit': 'Annual physical',
    }

    response = client.post('/appointments', json=payload, headers=_headers(patient.user_id, 'patient'))

    assert response.status_code == 201
    body = response.json()
    assert body['success'] is True
    assert body['message'] == 'Appointment booked successfully'
    assert body['data']['status'] == 'scheduled'
    assert body['data']['appointment_type'] == 'in-person'
    assert len(email_sender.sent) == 1

    duplicate = client.post(
        '/appointments',
        json=payload,
        headers=_headers(make_patient('Other', 'Patient').user_id, 'patient'),
    )

    assert duplicate.status_code == 409
    assert duplicate.json() == {'success': False, 'message': 'This time slot is already booked'}
    assert db.query(Appointment).count() == 1


def test_book_appointment_route_rejects_malformed_time(client, make_doctor, make_patient) -> None:
    doctor = make_doctor()
    patient = make_patient()

    response = client.post(
        '/appointments',
        json={
            'doctor_id': doctor.id,
            'appointment_date': _next_weekday(1).isoformat(),
            'appointment_time': '10am',
            'reason_for_visit': 'Annual physical',
        },
        headers=_headers(patient.user_id, 'patient'),
    )

    assert response.status_code == 400
    body = response.json()
    assert body['success'] is False
    assert 'appointment_time' in body['message']
    assert 'error' in body


def test_book_appointment_route_requires_patient_role(client, make_doctor) -> None:
    doctor = make_doctor()

    response = client.post(
        '/appointments',
        json={
            'doctor_id': doctor.id,
            'appointment_date': _next_weekday(1).isoformat(),
            'appointment_time': '10:00',
            'reason_for_visit': 'Annual physical',
        },
        headers=_headers(doctor.user_id, 'doctor'),
    )

    assert response.status_code == 403
    assert response.json() == {'success': False, 'message': 'Access denied'}


def test_unknown_appointment_returns_not_found_envelope(client, admin) -> None:
    response = client.get('/appointments/999', headers=_headers(admin.user_id, 'admin'))

    assert response.status_code == 404
    assert response.json() == {'success': False, 'message': 'Appointment not found'}


def test_leave_approval_route_runs_cascade(
    client,
    db,
    admin,
    make_doctor,
    make_patient,
    make_appointment,
    make_leave,
) -> None:
    doctor = make_doctor()
    start = _next_weekday(0)
    appointment = make_appointment(doctor, make_patient(), start + timedelta(days=1), '09:00')
    leave = make_leave(doctor, start, start + timedelta(days=2))

    response = client.patch(
        f'/admin/leaves/{leave.id}/approval',
        json={'status': 'approved'},
        headers=_headers(admin.user_id, 'admin'),
    )

    assert response.status_code == 200
    body = response.json()
    assert body['data']['leave']['status'] == 'approved'
    assert body['data']['cancelled_appointments'] == 1
    db.refresh(appointment)
    assert appointment.status == 'cancelled'


def test_leave_rejection_route_requires_reason(client, db, admin, make_doctor, make_leave) -> None:
    doctor = make_doctor()
    leave = make_leave(doctor, _next_weekday(0), _next_weekday(0))

    response = client.patch(
        f'/admin/leaves/{leave.id}/approval',
        json={'status': 'rejected', 'rejection_reason': 'No'},
        headers=_headers(admin.user_id, 'admin'),
    )

    assert response.status_code == 400
    assert response.json()['success'] is False
    db.refresh(leave)
    assert leave.status == 'pending'


def test_update_leave_route_edits_pending_leave(client, make_doctor, make_leave) -> None:
    doctor = make_doctor()
    start = _next_weekday(0)
    leave = make_leave(doctor, start, start)

    response = client.put(
        f'/leaves/{leave.id}',
        json={'end_date': (start + timedelta(days=1)).isoformat(), 'leave_type': 'Casual_Leave'},
        headers=_headers(doctor.user_id, 'doctor'),
    )

    assert response.status_code == 200
    body = response.json()
    assert body['message'] == 'Leave request updated successfully'
    assert body['data']['leave']['leave_type'] == 'casual_leave'
    assert body['data']['leave']['total_days'] == 2.0
    assert body['data']['affected_appointments'] == 0


def test_suspend_doctor_route_toggles_status(client, admin, make_doctor) -> None:
    doctor = make_doctor()
    headers = _headers(admin.user_id, 'admin')

    suspended = client.patch(
        f'/admin/doctors/{doctor.id}/suspend',
        json={'suspended': True, 'suspension_reason': 'Repeated missed consultations'},
        headers=headers,
    )
    activated = client.patch(f'/admin/doctors/{doctor.id}/suspend', json={'suspended': False}, headers=headers)

    assert suspended.status_code == 200
    assert suspended.json()['message'] == 'Doctor suspended successfully'
    assert suspended.json()['data']['approval_status'] == 'suspended'
    assert activated.status_code == 200
    assert activated.json()['data']['approval_status'] == 'approved'


def test_admin_routes_reject_doctors(client, make_doctor) -> None:
    doctor = make_doctor()

    response = client.post(
        f'/admin/doctors/{doctor.id}/block',
        json={'reason': 'Trying to block myself'},
        headers=_headers(doctor.user_id, 'doctor'),
    )

    assert response.status_code == 403


def test_block_then_delete_doctor_routes(client, db, admin, make_doctor) -> None:
    doctor = make_doctor()
    doctor_id = doctor.id
    headers = _headers(admin.user_id, 'admin')

    blocked = client.post(
        f'/admin/doctors/{doctor_id}/block',
        json={'reason': 'Pending licence review'},
        headers=headers,
    )
    again = client.post(
        f'/admin/doctors/{doctor_id}/block',
        json={'reason': 'Pending licence review'},
        headers=headers,
    )
    deleted = client.delete(f'/admin/doctors/{doctor_id}', headers=headers)

    assert blocked.status_code == 200
    assert blocked.json()['data']['cancelled_appointments'] == 0
    assert again.status_code == 409
    assert again.json()['message'] == 'Doctor is already blocked'
    assert deleted.status_code == 200
    db.expire_all()
    assert db.get(Doctor, doctor_id) is None


def test_doctor_schedule_routes_round_trip(client, make_doctor) -> None:
    doctor = make_doctor(availability=[])
    headers = _headers(doctor.user_id, 'doctor')

    updated = client.put(
        '/doctor/schedule',
        json={
            'availability': [{'day': 'Friday', 'slots': [{'start_time': '13:00', 'end_time': '15:00'}]}],
            'consultation_duration': 15,
        },
        headers=headers,
    )
    fetched = client.get('/doctor/schedule', headers=headers)

    assert updated.status_code == 200
    assert fetched.json()['data']['availability'] == [
        {'day': 'friday', 'is_available': True, 'slots': [{'start_time': '13:00', 'end_time': '15:00'}]},
    ]
    assert fetched.json()['data']['consultation_duration'] == 15


def test_notification_routes(client, db, make_patient) -> None:
    patient = make_patient()
    headers = _headers(patient.user_id, 'patient')

    create_notification(
        db,
        recipient_id=patient.user_id,
        notification_type='general',
        title='Welcome',
        message='Welcome to MediCare Plus',
    )
    db.commit()

    assert client.get('/notifications/unread-count', headers=headers).json()['data'] == {'count': 1}
    assert client.patch('/notifications/read-all', headers=headers).json()['data'] == {'count': 1}
    listed = client.get('/notifications', headers=headers).json()['data']
    assert [n['title'] for n in listed] == ['Welcome']
    assert listed[0]['is_read'] is True
    assert client.delete('/notifications/clear-read', headers=headers).json()['data'] == {'count': 1}
