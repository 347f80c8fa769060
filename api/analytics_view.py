from rest_framework.response import Response
from rest_framework.views import APIView

from .auth_utils import authenticate_request, require_role
from .db import get_db


class AdminStatsView(APIView):
    @authenticate_request
    @require_role('admin')
    def get(self, request):
        db = get_db()
        return Response({
            "totalDonors": db.users.count_documents({"role": "donor"}),
            "totalBloodBanks": db.bloodbanks.count_documents({}),
            "totalAppointments": db.appointments.count_documents({}),
            "pendingAppointments": db.appointments.count_documents({"status": "pending"}),
            "totalRequests": db.requests.count_documents({}),
            "pendingRequests": db.requests.count_documents({"status": "pending"}),
        })
