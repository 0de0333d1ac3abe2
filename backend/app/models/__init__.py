# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# Sans cet import, les FK comme courses.instructor_id → users.id échouent
# avec NoReferencedTableError si user.py n'est pas chargé avant course.py.

from app.models.user import User  # noqa: F401  — doit précéder course
from app.models.course import Course, CourseMaterial  # noqa: F401
from app.models.enrollment import Enrollment  # noqa: F401
from app.models.payment import Payment, StripeWebhookEvent  # noqa: F401
