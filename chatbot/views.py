import logging

from rest_framework import status
from rest_framework.exceptions import ValidationError
from rest_framework.response import Response
from rest_framework.views import APIView

from api.auth_utils import optional_authentication
from api.db import get_db
from api.views import book_appointment
from .gemini_service import GeminiNotConfigured, chat_reply, health_insight, parse_booking_action

logger = logging.getLogger(__name__)


class ChatView(APIView):
    """
    Chat assistant that can book appointments.

    POST /api/chat/
    Body: {"message": "Book me at City Blood Bank tomorrow", "history": [...]}
    """

    @optional_authentication
    def post(self, request):
        message = (request.data.get('message') or '').strip()
        if not message:
            return Response({'error': 'Message cannot be empty'}, status=status.HTTP_400_BAD_REQUEST)

        db = get_db()
        banks = list(db.bloodbanks.find({}, {'name': 1, 'address.city': 1}))

        try:
            text = chat_reply(message, banks, request.data.get('history'))
        except GeminiNotConfigured as e:
            return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        except Exception:
            logger.exception("Error generating chat response")
            return Response({'error': 'Failed to generate response'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)

        action = parse_booking_action(text)
        if action is None:
            return Response({'response': text})

        if not request.user_id:
            return Response({'response': "I can help you book that, but you need to be logged in first. "
                                         "Please sign in and try again."})

        try:
            book_appointment(db, request.user_id, action.get('bloodBankId'), action.get('date'),
                             notes='Booked via ChatBot')
        except ValidationError:
            logger.warning("Chat booking rejected: %s", action)
            return Response({'response': "Sorry, I couldn't book that appointment. "
                                         "Please check the blood bank and date and try again."})

        return Response({'response': f"Success! I have booked your appointment at "
                                     f"{action.get('bankName')} for {action.get('date')}."})


class HealthInsightView(APIView):
    def post(self, request):
        try:
            insight = health_insight(request.data)
        except GeminiNotConfigured as e:
            return Response({'error': str(e)}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        except Exception:
            logger.exception("Gemini API error")
            return Response({'error': 'Failed to generate insight'}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)
        return Response({'insight': insight})
