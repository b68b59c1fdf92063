# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre la clé étrangère check_ins → registrations.

from eventcheckin.models.registration import Registration  # noqa: F401  — doit précéder check_in
from eventcheckin.models.check_in import CheckIn  # noqa: F401
