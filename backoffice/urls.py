"""
URL configuration for the back-office project.
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('', include(('microfinance.urls', 'microfinance'), namespace='microfinance')),
]
