from django.urls import path
from . import views

urlpatterns = [
    path("recent-rounds/", views.RecentRoundsView.as_view(), name="recent-rounds"),
    path("rounds/<int:round_id>/", views.RoundDetailView.as_view(), name="round-detail"),
    path("verify-round/", views.VerifyRoundView.as_view(), name="verify-round"),
]
