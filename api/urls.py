from django.urls import path
from rest_framework.response import Response
from rest_framework.views import APIView

from .views import (
    RegisterView, VerifyOTPView, LoginView, ProfileView,
    BloodBankListView, BloodBankDetailView,
    AppointmentListView, AppointmentDetailView,
    RequestListView, RequestDetailView,
    UserManagementView, UserDetailView,
)
from .ext_views import (
    DisasterAlertView, BadgeView, LeaderboardView, FeedbackView, ReminderView,
    SOSListView, SOSDetailView, CampView, VolunteerJoinView,
    AdminVolunteerListView, AdminVolunteerDetailView,
    PaymentIntentView, DonationSuccessView,
)
from .analytics_view import AdminStatsView


class HealthView(APIView):
    def get(self, request):
        return Response({"status": "ok"})


urlpatterns = [
    path('health/', HealthView.as_view(), name='health'),

    # Auth
    path('register/', RegisterView.as_view(), name='register'),
    path('register/verify/', VerifyOTPView.as_view(), name='register-verify'),
    path('auth/login/', LoginView.as_view(), name='login'),
    path('profile/', ProfileView.as_view(), name='profile'),

    # Blood banks
    path('bloodbanks/', BloodBankListView.as_view(), name='bloodbank-list'),
    path('bloodbanks/<str:bank_id>/', BloodBankDetailView.as_view(), name='bloodbank-detail'),

    # Appointments & requests
    path('appointments/', AppointmentListView.as_view(), name='appointment-list'),
    path('appointments/<str:appointment_id>/', AppointmentDetailView.as_view(), name='appointment-detail'),
    path('requests/', RequestListView.as_view(), name='request-list'),
    path('requests/<str:request_id>/', RequestDetailView.as_view(), name='request-detail'),

    # Coordination
    path('disaster/', DisasterAlertView.as_view(), name='disaster'),
    path('sos/', SOSListView.as_view(), name='sos-list'),
    path('sos/<str:alert_id>/', SOSDetailView.as_view(), name='sos-detail'),

    # Gamification & donor care
    path('badges/', BadgeView.as_view(), name='badges'),
    path('leaderboard/', LeaderboardView.as_view(), name='leaderboard'),
    path('feedback/', FeedbackView.as_view(), name='feedback'),
    path('reminders/', ReminderView.as_view(), name='reminders'),

    # Community
    path('camps/', CampView.as_view(), name='camps'),
    path('join/', VolunteerJoinView.as_view(), name='join'),

    # Money donations
    path('create-payment-intent/', PaymentIntentView.as_view(), name='create-payment-intent'),
    path('donate-money/success/', DonationSuccessView.as_view(), name='donate-money-success'),

    # Admin API
    path('admin/stats/', AdminStatsView.as_view(), name='admin-stats'),
    path('admin/users/', UserManagementView.as_view(), name='admin-users'),
    path('admin/users/<str:user_id>/', UserDetailView.as_view(), name='admin-user-detail'),
    path('admin/volunteers/', AdminVolunteerListView.as_view(), name='admin-volunteers'),
    path('admin/volunteers/<str:volunteer_id>/', AdminVolunteerDetailView.as_view(), name='admin-volunteer-detail'),
]
