"""API tests for authentication endpoints."""

from __future__ import annotations

from datetime import timedelta

from django.core import mail
from django.urls import reverse
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.users.models import PasswordResetToken, User


class AuthAPITests(APITestCase):
    def test_register_returns_tokens(self) -> None:
        payload = {
            "email": "skipper@example.com",
            "phone": "+1 305-555-0100",
            "first_name": "Sam",
            "last_name": "Skipper",
            "password": "Harbor-Lights-42",
            "password_confirm": "Harbor-Lights-42",
        }

        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertIn("tokens", response.data)
        self.assertEqual(response.data["user"]["email"], payload["email"])
        self.assertEqual(response.data["user"]["role"], User.Role.RENTER)
        self.assertEqual(len(response.data["user"]["short_id"]), 8)
        user = User.objects.get(email=payload["email"])
        self.assertEqual(user.phone, "+13055550100")
        self.assertTrue(str(user.id).startswith(user.short_id))

    def test_register_as_owner(self) -> None:
        payload = {
            "email": "marina@example.com",
            "password": "Harbor-Lights-42",
            "password_confirm": "Harbor-Lights-42",
            "role": "owner",
        }
        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["user"]["role"], User.Role.OWNER)

    def test_register_cannot_claim_admin_role(self) -> None:
        payload = {
            "email": "sneaky@example.com",
            "password": "Harbor-Lights-42",
            "password_confirm": "Harbor-Lights-42",
            "role": "admin",
        }
        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("role", response.data["error"]["details"])

    def test_register_rejects_duplicate_email(self) -> None:
        User.objects.create_user(email="taken@example.com", password="Whatever-123")
        payload = {
            "email": "TAKEN@example.com",
            "password": "Harbor-Lights-42",
            "password_confirm": "Harbor-Lights-42",
        }
        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"]["status"], 400)
        self.assertIn("email", response.data["error"]["details"])

    def test_register_password_mismatch(self) -> None:
        payload = {
            "email": "mismatch@example.com",
            "password": "Harbor-Lights-42",
            "password_confirm": "Harbor-Lights-43",
        }
        response = self.client.post(reverse("auth:register"), payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("password_confirm", response.data["error"]["details"])

    def test_login_with_phone(self) -> None:
        User.objects.create_user(email="phone@example.com", phone="+13055550111", password="CorrectPassword1")
        response = self.client.post(
            reverse("auth:login"),
            {"login": "+1 305 555 0111", "password": "CorrectPassword1"},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertIn("access", response.data["tokens"])

    def test_login_limited_attempts(self) -> None:
        user = User.objects.create_user(
            email="lock@example.com",
            phone="+13055550123",
            password="CorrectPassword1",
        )

        url = reverse("auth:login")
        wrong_payload = {"login": user.email, "password": "wrong"}
        for _ in range(5):
            response = self.client.post(url, wrong_payload, format="json")

        user.refresh_from_db()
        self.assertTrue(user.is_locked)
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

        # Correct password is still refused while locked
        response = self.client.post(url, {"login": user.email, "password": "CorrectPassword1"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("locked", response.data["error"]["message"])

        # After lock expires user can login again
        user.locked_until = timezone.now() - timedelta(minutes=1)
        user.save(update_fields=["locked_until"])
        response = self.client.post(url, {"login": user.email, "password": "CorrectPassword1"}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)

    def test_successful_login_resets_counter(self) -> None:
        user = User.objects.create_user(email="reset-counter@example.com", password="CorrectPassword1")
        url = reverse("auth:login")
        self.client.post(url, {"login": user.email, "password": "nope"}, format="json")
        self.client.post(url, {"login": user.email, "password": "CorrectPassword1"}, format="json")
        user.refresh_from_db()
        self.assertEqual(user.failed_login_attempts, 0)

    def test_password_reset_flow(self) -> None:
        user = User.objects.create_user(
            email="reset@example.com",
            phone="+13055550000",
            password="OldPassword1",
        )

        request_resp = self.client.post(
            reverse("auth:password-reset-request"),
            {"identifier": user.email},
            format="json",
        )
        self.assertEqual(request_resp.status_code, status.HTTP_202_ACCEPTED, request_resp.data)
        self.assertEqual(len(mail.outbox), 1)

        token = PasswordResetToken.objects.get(user=user)
        self.assertIn(token.code, mail.outbox[0].body)
        confirm_payload = {
            "identifier": user.email,
            "code": token.code,
            "new_password": "NewPassword1",
            "new_password_confirm": "NewPassword1",
        }
        confirm_resp = self.client.post(
            reverse("auth:password-reset-confirm"),
            confirm_payload,
            format="json",
        )
        self.assertEqual(confirm_resp.status_code, status.HTTP_200_OK, confirm_resp.data)
        user.refresh_from_db()
        self.assertTrue(user.check_password("NewPassword1"))
        token.refresh_from_db()
        self.assertTrue(token.is_used)

    def test_wrong_reset_code_burns_an_attempt(self) -> None:
        user = User.objects.create_user(email="wrong-code@example.com", password="OldPassword1")
        token = PasswordResetToken.issue_for(user)
        wrong_code = "000000" if token.code != "000000" else "111111"

        response = self.client.post(
            reverse("auth:password-reset-confirm"),
            {
                "identifier": user.email,
                "code": wrong_code,
                "new_password": "NewPassword1",
                "new_password_confirm": "NewPassword1",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        token.refresh_from_db()
        self.assertEqual(token.attempts_left, PasswordResetToken.MAX_ATTEMPTS - 1)

    def test_expired_reset_code_is_rejected(self) -> None:
        user = User.objects.create_user(email="expired@example.com", password="OldPassword1")
        token = PasswordResetToken.issue_for(user)
        token.expires_at = timezone.now() - timedelta(seconds=1)
        token.save(update_fields=["expires_at"])

        response = self.client.post(
            reverse("auth:password-reset-confirm"),
            {
                "identifier": user.email,
                "code": token.code,
                "new_password": "NewPassword1",
                "new_password_confirm": "NewPassword1",
            },
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        user.refresh_from_db()
        self.assertTrue(user.check_password("OldPassword1"))

    def test_new_reset_request_invalidates_previous_code(self) -> None:
        user = User.objects.create_user(email="twice@example.com", password="OldPassword1")
        first = PasswordResetToken.issue_for(user)
        PasswordResetToken.issue_for(user)
        first.refresh_from_db()
        self.assertTrue(first.is_used)
