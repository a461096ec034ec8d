from django.urls import path
from . import views

app_name = 'merchants'

urlpatterns = [
    # POST /api/merchants/grabs/validate/ - Validate grab PIN / QR at the counter
    path('grabs/validate/', views.validate_grab_view, name='grab-validate'),
]
