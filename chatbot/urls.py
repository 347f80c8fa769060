from django.urls import path
from . import views

urlpatterns = [
    path('chat/', views.ChatView.as_view(), name='chat'),
    path('ai/health-insight/', views.HealthInsightView.as_view(), name='health-insight'),
]
