# user-facing messages, displayed as-is by the storefront (Arabic UI)

ALL_FIELDS_REQUIRED = "جميع الحقول مطلوبة"
ORDER_FIELDS_REQUIRED = (
    "جميع الحقول مطلوبة + اختيار شدات/حزمة + رقم التحويل + سكرين شوت"
)
SCREENSHOT_REQUIRED = "السكرين شوت مطلوب"
PURCHASE_CONFLICT = "اختر الشدات أو الحزمة فقط، وليس كليهما"
INVALID_EMAIL = "البريد الإلكتروني غير صالح"
INVALID_AMOUNT = "المبلغ غير صالح"
INVALID_VALUE = "قيمة غير صالحة"
INVALID_FILE_TYPE = "نوع الملف غير مسموح. الصيغ المسموحة: jpeg/png/webp"
FILE_TOO_LARGE = "حجم الصورة يتجاوز الحد المسموح (5MB)"
MALFORMED_BODY = "صيغة الطلب غير صحيحة"

INQUIRY_FIELDS_REQUIRED = "البريد + الرسالة مطلوبين"
SUGGESTION_FIELDS_REQUIRED = "الاسم + وسيلة التواصل + الرسالة مطلوبين"
STATUS_FIELDS_REQUIRED = "معرّف الطلب والحالة مطلوبان"
INVALID_STATUS = "حالة الطلب غير معروفة"

UNAUTHORIZED = "غير مصرح"
BAD_CREDENTIALS = "بيانات الدخول غير صحيحة"

ORDER_NOT_FOUND = "الطلب غير موجود"
INQUIRY_NOT_FOUND = "الاستفسار غير موجود"
SUGGESTION_NOT_FOUND = "الاقتراح غير موجود"
NO_SCREENSHOT = "لا يوجد صورة"
FILE_NOT_FOUND = "الملف غير موجود"

SAVE_FAILED = "حدث خطأ أثناء الحفظ"
DATABASE_ERROR = "خطأ في قاعدة البيانات"
REPLY_FAILED = "فشل إرسال الرد"
SERVER_ERROR = "حدث خطأ في الخادم"
WEBHOOK_DISABLED = "cashier webhook is not configured"
