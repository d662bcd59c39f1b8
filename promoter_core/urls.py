from django.urls import path, include

urlpatterns = [
    path('api/git/', include('gitflow_app.urls', namespace='gitflow_app')),
]
