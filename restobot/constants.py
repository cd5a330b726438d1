# Conversation states
(
    WAITING_PROMO_CODE,
    WAITING_CONTACT,
    WAITING_OFFER_TYPE,
    WAITING_OFFER_NAME,
    WAITING_OFFER_TERMS,
) = range(5)

# user_data keys
CART_KEY = "cart"
PROMO_CODE_KEY = "promo_code"
CUSTOMER_KEY = "customer"
ORDER_TYPE_KEY = "order_type"
NEW_OFFER_KEY = "new_offer"
