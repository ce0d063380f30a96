from splitbite.models.receipt import ReceiptModel  # noqa: F401
from splitbite.models.restaurant import RestaurantModel  # noqa: F401
