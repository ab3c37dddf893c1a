from django.contrib import admin
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

urlpatterns = [
    path('admin/', admin.site.urls),

    # API
    path('api/users/', include('apps.users.urls')),
    path('api/loans/', include('apps.loans.urls')),
    path('api/offers/', include('apps.loans.offer_urls')),
    path('api/fundraise/', include('apps.crowdfunding.urls')),

    # OpenAPI schema and docs
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/swagger/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
]
